"""End-to-end fast-push runs against local bare remotes."""
from __future__ import annotations

from argparse import Namespace
from unittest.mock import patch
import unittest

from fastpush.errors import FastPushAborted, GitCommandError
from fastpush.errors import RepoCreationError
from fastpush.workflow_engine import FastPushOrchestrator
from fastpush.payload import FastPushPayload, RepoMode
from fastpush.repository import RepositoryHandle
from fastpush.decisions import AutoDecisionMaker
from fastpush.executor import CommandResult
from fastpush.classifier import ErrorKind
from fastpush.github import CreatedRepo
from fastpush.facade import GitFacade
from fastpush import _constants as const
from fastpush.flowlog import FlowLog
from fastpush.utils import Output
from tests._gitfixture import GitFixture


def _flags() -> Namespace:
    return Namespace(quiet=False, plain=True, debug=False, auto_fix=False,
           ci=True, interactive=False)


def _decider(autofix: bool = False) -> AutoDecisionMaker:
    return AutoDecisionMaker(autofix=autofix, out=Output(quiet=True))


class FakeCreator:
    def __init__(self, clone_url: str) -> None:
        self.clone_url = clone_url
        self.calls: list[tuple[str, bool, str]] = []

    def create(self, name: str, private: bool = False,
               description: str = "") -> CreatedRepo:
        self.calls.append((name, private, description))
        return CreatedRepo(name, f"me/{name}", f"https://github.com/me/{name}",
               "", self.clone_url)


class OrchestratorIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        const.sync_runtime_flags(_flags())
        self.fx = GitFixture()

    def tearDown(self) -> None:
        self.fx.close()

    def _run(self, repo: object, decider: AutoDecisionMaker,
             **payload: object) -> tuple[FastPushOrchestrator, str]:
        o = FastPushOrchestrator(
            RepositoryHandle.for_path(str(repo)),
            FastPushPayload(**payload),  # type: ignore[arg-type]
            decider,
        )
        return o, o.orchestrate()

    def test_idle_run_with_new_remote_has_nothing_to_push(self) -> None:
        repo = self.fx.init_repo("idle")
        self.fx.write_file(repo, "README.md", "hi\n")
        self.fx.commit_all(repo, "initial")
        url  = "https://example.com/a/b.git"

        # keep the run offline: example.com is never contacted
        with patch.object(GitFacade, "has_remote_branch",
                          return_value=False):
            o, result = self._run(repo, _decider(), remote_url=url,
                        branch="main", commit_message="x")

        self.assertEqual(result, "nothing to push")
        self.assertEqual(self.fx.run(["remote", "get-url", "origin"],
                         cwd=repo).stdout.strip(), url)
        self.assertIn("nothing-to-do", [i.id for i in o.issues])
        self.assertEqual(self.fx.count(repo), 1)

    def test_deleted_remote_branch_is_recreated_on_push(self) -> None:
        repo, remote = self.fx.published_repo()
        self.fx.run(["checkout", "-b", "feature"], cwd=repo)
        self.fx.write_file(repo, "f.txt", "one\n")
        self.fx.commit_all(repo, "feature work")
        self.fx.push_upstream(repo, "origin", "feature")
        self.fx.run(["branch", "-D", "feature"], cwd=remote)
        self.fx.write_file(repo, "f.txt", "two\n")

        o, result = self._run(repo, _decider(autofix=True),
                    branch="feature", commit_message="more work")

        self.assertEqual(result, "pushed feature to origin")
        self.assertIn("upstream-missing", [i.id for i in o.issues])
        self.assertTrue(o.set_upstream)
        self.assertEqual(self.fx.head(remote, "refs/heads/feature"),
                         self.fx.head(repo))
        upstream = self.fx.run(["rev-parse", "--abbrev-ref",
                   "feature@{upstream}"], cwd=repo).stdout.strip()
        self.assertEqual(upstream, "origin/feature")

    def test_re_added_origin_gets_tracking_fixed_then_pushes(self) -> None:
        repo, remote = self.fx.published_repo()
        self.fx.run(["remote", "remove", "origin"], cwd=repo)
        self.fx.add_remote(repo, "origin", remote)
        self.fx.write_file(repo, "after.txt", "x\n")

        o, result = self._run(repo, _decider(autofix=True), branch="main",
                    commit_message="after re-adding origin")

        self.assertEqual(result, "pushed main to origin")
        self.assertIn("upstream-broken", [i.id for i in o.issues])
        self.assertEqual(self.fx.head(remote, "refs/heads/main"),
                         self.fx.head(repo))
        upstream = self.fx.run(["rev-parse", "--abbrev-ref",
                   "main@{upstream}"], cwd=repo).stdout.strip()
        self.assertEqual(upstream, "origin/main")

    def test_diverged_branch_is_rebased_then_pushed(self) -> None:
        repo, remote = self.fx.published_repo()
        other = self.fx.clone(remote, "other")
        for i in range(5):
            self.fx.write_file(other, f"theirs{i}.txt", f"{i}\n")
            self.fx.commit_all(other, f"theirs {i}")
        self.fx.run(["push"], cwd=other)
        for i in range(2):
            self.fx.write_file(repo, f"mine{i}.txt", f"{i}\n")
            self.fx.commit_all(repo, f"mine {i}")

        o, result = self._run(repo, _decider(autofix=True), branch="main",
                    commit_message="unused")

        self.assertEqual(result, "pushed main to origin")
        self.assertEqual([i.id for i in o.issues], ["branches-diverged"])
        self.assertEqual(self.fx.head(remote, "refs/heads/main"),
                         self.fx.head(repo))
        self.assertEqual(self.fx.count(repo), 8)

    def test_diverged_branch_in_ci_without_autofix_is_cancelled(self) -> None:
        repo, remote = self.fx.published_repo()
        other = self.fx.clone(remote, "other")
        self.fx.write_file(other, "theirs.txt", "x\n")
        self.fx.commit_all(other, "theirs")
        self.fx.run(["push"], cwd=other)
        self.fx.write_file(repo, "mine.txt", "y\n")
        self.fx.commit_all(repo, "mine")
        before = self.fx.head(repo)

        with self.assertRaises(FastPushAborted) as ex:
            self._run(repo, _decider(), branch="main")
        self.assertEqual(ex.exception.step, "remediate")
        self.assertEqual(self.fx.head(repo), before)

    def test_clean_commit_then_push_creates_no_commit(self) -> None:
        repo, remote = self.fx.published_repo()
        o = FastPushOrchestrator(RepositoryHandle.for_path(str(repo)),
            FastPushPayload(branch="main"), _decider())
        o.has_commits = True
        before = self.fx.head(repo)

        o.commit()
        o.push()

        self.assertEqual(self.fx.head(repo), before)
        self.assertEqual(self.fx.head(remote, "refs/heads/main"), before)

    def test_first_commit_is_renamed_and_published(self) -> None:
        remote = self.fx.init_bare()
        repo   = self.fx.init_repo("fresh")
        self.fx.add_remote(repo, "origin", remote)
        self.fx.write_file(repo, "app.py", "print('hi')\n")

        o, result = self._run(repo, _decider(), branch="trunk",
                    commit_message="first")

        self.assertEqual(result, "pushed trunk to origin")
        self.assertFalse(o.has_commits)
        self.assertEqual(self.fx.branch(repo), "trunk")
        self.assertEqual(self.fx.head(remote, "refs/heads/trunk"),
                         self.fx.head(repo))

    def test_missing_directory_repo_is_cancelled_in_ci(self) -> None:
        folder = self.fx.root / "plain"
        folder.mkdir()
        with self.assertRaises(FastPushAborted) as ex:
            self._run(folder, _decider(), branch="main")
        self.assertEqual(ex.exception.step, "repository")
        self.assertFalse((folder / ".git").exists())

    def test_new_repository_is_created_and_pushed(self) -> None:
        remote  = self.fx.init_bare("created.git")
        folder  = self.fx.root / "project"
        folder.mkdir()
        self.fx.write_file(folder, "main.py", "pass\n")
        creator = FakeCreator(remote.as_uri())
        flow    = FlowLog(self.fx.root / "logs")

        o = FastPushOrchestrator(
            RepositoryHandle.for_path(str(folder)),
            FastPushPayload(repo_mode=RepoMode.NEW,
                new_repo_name="project", new_repo_private=True,
                branch="main", commit_message="init"),
            _decider(),
            repo_creator=creator,
            flow_log=flow,
        )
        self.assertEqual(o.orchestrate(), "pushed main to origin")
        self.assertEqual(creator.calls, [("project", True, "")])
        self.assertEqual(self.fx.head(remote, "refs/heads/main"),
                         self.fx.head(folder))
        entry = flow.entries()[0]
        self.assertEqual(entry["status"], "success")
        self.assertEqual(entry["repo_name"], "project")

    def test_new_repository_without_token_fails(self) -> None:
        folder = self.fx.root / "project"
        folder.mkdir()
        o = FastPushOrchestrator(
            RepositoryHandle.for_path(str(folder)),
            FastPushPayload(repo_mode=RepoMode.NEW, new_repo_name="p"),
            _decider(),
        )
        with self.assertRaises(RepoCreationError) as ex:
            o.orchestrate()
        self.assertEqual(ex.exception.code,
                         "FP_NET_REPO_CREATE_FAIL")


class BoundedRetryTests(unittest.TestCase):
    def setUp(self) -> None:
        const.sync_runtime_flags(_flags())

    def test_second_rejection_is_final(self) -> None:
        calls: list[list[str]] = []

        def runner(args: list[str], cwd: str) -> CommandResult:
            argv = [a for a in args if a != "--no-optional-locks"]
            calls.append(argv)
            if argv[0] == "push":
                raise GitCommandError(["git", "push"], 1,
                      "! [rejected] main -> main (fetch first)",
                      ErrorKind.PUSH_REJECTED)
            if argv[0] == "symbolic-ref":
                return CommandResult("main", tuple(args))
            return CommandResult("", tuple(args))

        o = FastPushOrchestrator(RepositoryHandle.for_path("."),
            FastPushPayload(branch="main"), _decider(autofix=True),
            runner=runner)
        o.has_commits = True

        with self.assertRaises(GitCommandError) as ex:
            o.push()
        self.assertIs(ex.exception.kind, ErrorKind.PUSH_REJECTED)
        self.assertEqual(sum(1 for c in calls if c[0] == "push"), 2)
        self.assertEqual(calls.count(["pull", "--rebase"]), 1)

    def test_rejection_without_autofix_aborts_after_one_push(self) -> None:
        pushes: list[list[str]] = []

        def runner(args: list[str], cwd: str) -> CommandResult:
            if args[0] == "push":
                pushes.append(args)
                raise GitCommandError(["git", "push"], 1,
                      "Updates were rejected", ErrorKind.PUSH_REJECTED)
            return CommandResult("", tuple(args))

        o = FastPushOrchestrator(RepositoryHandle.for_path("."),
            FastPushPayload(branch="main"), _decider(), runner=runner)
        o.has_commits = True
        msg, result = o.push()
        self.assertEqual(result.name, "ABORT")
        self.assertIn("Push Rejected", msg or "")
        self.assertEqual(len(pushes), 1)


if __name__ == "__main__":
    unittest.main()
