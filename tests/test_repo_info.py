import unittest

from npmquality.models.schemas import PackageEntry, RepositoryDescriptor
from npmquality.sources.base import encode_package_name, extract_repo_info


def git(url):
    return RepositoryDescriptor(type="git", url=url)


class ExtractRepoInfoTests(unittest.TestCase):
    def test_https_url(self) -> None:
        info = extract_repo_info(git("https://github.com/alexfernandez/loadtest"))
        self.assertTrue(info.valid)
        self.assertEqual((info.owner, info.name), ("alexfernandez", "loadtest"))

    def test_git_plus_https_with_suffix(self) -> None:
        info = extract_repo_info(git("git+https://github.com/alexfernandez/loadtest.git"))
        self.assertTrue(info.valid)
        self.assertEqual(info.name, "loadtest")

    def test_ssh_shapes(self) -> None:
        for url in (
            "git@github.com:owner/repo.git",
            "git://github.com:owner/repo",
            "github:owner/repo",
            "ssh://git@github.com/owner/repo.git",
            "git://github.com/owner/repo.git",
        ):
            with self.subTest(url=url):
                info = extract_repo_info(git(url))
                self.assertTrue(info.valid)
                self.assertEqual((info.owner, info.name), ("owner", "repo"))

    def test_accepts_plain_dict(self) -> None:
        info = extract_repo_info({"type": "git", "url": "https://github.com/a/b"})
        self.assertTrue(info.valid)

    def test_invalid_shapes(self) -> None:
        for repository in (
            None,
            {},
            RepositoryDescriptor(type="svn", url="https://github.com/a/b"),
            RepositoryDescriptor(type="git", url=None),
            git("https://gitlab.com/owner/repo"),
            git("https://github.com/owner"),
            git("https://github.com/owner/repo/tree/main"),
            git("github:owner"),
            git("not a url"),
            {"type": "git", "url": 42},
        ):
            with self.subTest(repository=repository):
                self.assertFalse(extract_repo_info(repository).valid)

    def test_is_pure(self) -> None:
        repository = git("git@github.com:owner/repo.git")
        self.assertEqual(extract_repo_info(repository), extract_repo_info(repository))

    def test_string_repository_shorthand(self) -> None:
        entry = PackageEntry.model_validate({"name": "x", "repository": "github:owner/repo"})
        info = extract_repo_info(entry.repository)
        self.assertTrue(info.valid)
        self.assertEqual(info.owner, "owner")


class EncodePackageNameTests(unittest.TestCase):
    def test_scoped_name(self) -> None:
        self.assertEqual(encode_package_name("@types/node"), "@types%2Fnode")

    def test_plain_name(self) -> None:
        self.assertEqual(encode_package_name("loadtest"), "loadtest")


if __name__ == "__main__":
    unittest.main()
