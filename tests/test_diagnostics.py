"""Unit tests for pre-flight diagnosis ordering and filtering."""
from __future__ import annotations

import unittest

from fastpush.diagnostics import (
    IssueId,
    diagnose,
    has_blocking,
    make_issue,
    relevant_issues,
    split_issues,
)
from fastpush.inspector import (
    Divergence,
    DirtySubmodule,
    LockState,
    SubmoduleStatus,
)


class FakeInspector:
    """Canned answers for every query diagnose() makes."""

    def __init__(self, **facts: object) -> None:
        self.facts: dict[str, object] = {
            "is_repo": True,
            "conflicts": [],
            "rebase": False,
            "merge": False,
            "has_remote": True,
            "branch": "main",
            "submodules": [],
            "clean": False,
            "staged": [],
            "detached": False,
            "lock": None,
            "divergence": Divergence(),
            "remote_branch": False,
        }
        self.facts.update(facts)
        self.calls: list[str] = []

    def _answer(self, name: str) -> object:
        self.calls.append(name)
        return self.facts[name]

    def is_repo(self) -> bool: return self._answer("is_repo")  # type: ignore[return-value]
    def conflicts(self) -> list[str]: return self._answer("conflicts")  # type: ignore[return-value]
    def rebase_in_progress(self) -> bool: return self._answer("rebase")  # type: ignore[return-value]
    def merge_in_progress(self) -> bool: return self._answer("merge")  # type: ignore[return-value]
    def has_remote(self) -> bool: return self._answer("has_remote")  # type: ignore[return-value]
    def current_branch(self) -> str | None: return self._answer("branch")  # type: ignore[return-value]
    def dirty_submodules(self) -> list[DirtySubmodule]: return self._answer("submodules")  # type: ignore[return-value]
    def is_clean(self) -> bool: return self._answer("clean")  # type: ignore[return-value]
    def staged_files(self) -> list[str]: return self._answer("staged")  # type: ignore[return-value]
    def is_detached(self) -> bool: return self._answer("detached")  # type: ignore[return-value]
    def index_lock(self) -> LockState | None: return self._answer("lock")  # type: ignore[return-value]
    def divergence(self) -> Divergence: return self._answer("divergence")  # type: ignore[return-value]

    def has_remote_branch(self, branch: str) -> bool:
        return self._answer("remote_branch")  # type: ignore[return-value]


def _ids(inspector: FakeInspector) -> list[str]:
    return [issue.id for issue in diagnose(inspector)]  # type: ignore[arg-type]


class DiagnosisTests(unittest.TestCase):
    def test_non_repository_short_circuits(self) -> None:
        inspector = FakeInspector(is_repo=False)
        self.assertEqual(_ids(inspector), ["no-repo"])
        self.assertEqual(inspector.calls, ["is_repo"])

    def test_ready_repository_has_no_issues(self) -> None:
        self.assertEqual(_ids(FakeInspector()), [])

    def test_ahead_only_is_not_an_issue(self) -> None:
        ids = _ids(FakeInspector(divergence=Divergence(ahead=3)))
        self.assertNotIn("branches-diverged", ids)
        self.assertNotIn("behind-remote", ids)

    def test_diverged_and_behind(self) -> None:
        diverged = diagnose(FakeInspector(
                   divergence=Divergence(ahead=2, behind=5)))  # type: ignore[arg-type]
        self.assertEqual([i.id for i in diverged], ["branches-diverged"])
        self.assertIn("2 commit(s) ahead and 5", diverged[0].description)
        self.assertTrue(diverged[0].auto_fixable)
        self.assertEqual(_ids(FakeInspector(
            divergence=Divergence(behind=1))), ["behind-remote"])

    def test_missing_upstream_checks_remote_branch(self) -> None:
        missing = FakeInspector(divergence=Divergence(no_upstream=True))
        broken  = FakeInspector(divergence=Divergence(no_upstream=True),
                  remote_branch=True)
        self.assertEqual(_ids(missing), ["upstream-missing"])
        self.assertEqual(_ids(broken), ["upstream-broken"])

    def test_no_remote_skips_upstream_checks(self) -> None:
        inspector = FakeInspector(has_remote=False, clean=True)
        self.assertEqual(_ids(inspector), ["no-remote"])
        self.assertNotIn("divergence", inspector.calls)

    def test_detached_head_skips_divergence(self) -> None:
        inspector = FakeInspector(branch=None, detached=True)
        self.assertEqual(_ids(inspector), ["detached-head"])
        self.assertNotIn("divergence", inspector.calls)

    def test_nothing_to_do(self) -> None:
        self.assertEqual(_ids(FakeInspector(clean=True)), ["nothing-to-do"])
        self.assertEqual(_ids(FakeInspector(clean=True,
            divergence=Divergence(ahead=1))), [])
        self.assertEqual(_ids(FakeInspector(clean=True,
            staged=["a.txt"])), [])
        self.assertEqual(_ids(FakeInspector(clean=True,
            divergence=Divergence(no_upstream=True))),
            ["upstream-missing", "nothing-to-do"])

    def test_lock_staleness(self) -> None:
        stale  = LockState("/r/.git/index.lock", 7200.0, True)
        active = LockState("/r/.git/index.lock", 3.0, False)
        issues = diagnose(FakeInspector(lock=stale))  # type: ignore[arg-type]
        self.assertEqual([i.id for i in issues], ["stale-lock"])
        self.assertIn("2 h 0 min", issues[0].description)
        self.assertEqual(_ids(FakeInspector(lock=active)), ["active-lock"])

    def test_full_order(self) -> None:
        inspector = FakeInspector(
            conflicts=["a.py", "b.py"],
            rebase=True,
            merge=True,
            divergence=Divergence(ahead=1, behind=1),
            submodules=[DirtySubmodule("lib", SubmoduleStatus.MODIFIED)],
            detached=True,
            lock=LockState("/r/.git/index.lock", 10.0, False),
        )
        self.assertEqual(_ids(inspector), [
            "merge-conflicts",
            "rebase-in-progress",
            "merge-in-progress",
            "branches-diverged",
            "dirty-submodules",
            "detached-head",
            "active-lock",
        ])

    def test_diagnosis_is_idempotent(self) -> None:
        inspector = FakeInspector(conflicts=["a.py"], clean=True,
                    lock=LockState("/r/.git/index.lock", 1.0, False))
        first  = diagnose(inspector)  # type: ignore[arg-type]
        second = diagnose(inspector)  # type: ignore[arg-type]
        self.assertEqual(first, second)

    def test_conflict_description_lists_files(self) -> None:
        issues = diagnose(FakeInspector(conflicts=["a.py", "b.py"]))  # type: ignore[arg-type]
        self.assertIn("2 file(s)", issues[0].description)
        self.assertIn("  - b.py", issues[0].description)
        self.assertTrue(issues[0].blocking)


class IssueFilterTests(unittest.TestCase):
    def test_fresh_repository_filtering(self) -> None:
        issues = [make_issue(i) for i in (
            IssueId.NO_REMOTE,
            IssueId.UPSTREAM_MISSING,
            IssueId.UPSTREAM_BROKEN,
            IssueId.NOTHING_TO_DO,
            IssueId.DETACHED_HEAD,
            IssueId.STALE_LOCK,
            IssueId.MERGE_CONFLICTS,
        )]
        fresh = [i.id for i in relevant_issues(issues, has_commits=False)]
        self.assertEqual(fresh, ["stale-lock", "merge-conflicts"])

        seasoned = [i.id for i in relevant_issues(issues, has_commits=True)]
        self.assertEqual(seasoned, [
            "upstream-missing",
            "upstream-broken",
            "nothing-to-do",
            "detached-head",
            "stale-lock",
            "merge-conflicts",
        ])

    def test_split_keeps_order(self) -> None:
        issues = [make_issue(i) for i in (
            IssueId.STALE_LOCK,
            IssueId.MERGE_CONFLICTS,
            IssueId.BEHIND_REMOTE,
            IssueId.ACTIVE_LOCK,
        )]
        blocking, fixable = split_issues(issues)
        self.assertEqual([i.id for i in blocking],
                         ["merge-conflicts", "active-lock"])
        self.assertEqual([i.id for i in fixable],
                         ["stale-lock", "behind-remote"])
        self.assertTrue(has_blocking(issues))
        self.assertFalse(has_blocking(fixable))

    def test_missing_template_values_render_placeholder(self) -> None:
        issue = make_issue(IssueId.BEHIND_REMOTE)
        self.assertIn("? commit(s) behind", issue.description)
        self.assertEqual(issue.as_dict()["id"], "behind-remote")


if __name__ == "__main__":
    unittest.main()
