"""Tests for singleton exclusivity."""

from modresolve import FailureKind, ResolutionStatus


def resolved_singletons(state, name):
    return [m for m in state.get_modules(name) if m.singleton and m.is_resolved()]


class TestSingleton:
    """At most one singleton version per symbolic name is resolved."""

    def test_newest_wins_by_default(self, state, install):
        s1 = install("S", "1.0.0", singleton=True)
        s2 = install("S", "2.0.0", singleton=True)

        report = state.resolve([s1.identity, s2.identity])

        assert s2.is_resolved()
        assert not s1.is_resolved()
        (reason,) = report.reasons(s1.identity)
        assert reason.kind is FailureKind.SINGLETON_CONFLICT
        assert "S_2.0.0" in reason.detail

    def test_newest_wins_regardless_of_install_order(self, state, install):
        s2 = install("S", "2.0.0", singleton=True)
        s1 = install("S", "1.0.0", singleton=True)

        state.resolve()

        assert resolved_singletons(state, "S") == [s2]
        assert not s1.is_resolved()

    def test_dependent_range_forces_older_version(self, state, install):
        """Backtracking honors a requirement's range before singleton preference."""
        s1 = install("S", "1.0.0", singleton=True)
        s2 = install("S", "2.0.0", singleton=True)
        d = install("D", requires=[{"name": "S", "range": "[1.0,2.0)"}])

        report = state.resolve()

        assert s1.is_resolved()
        assert not s2.is_resolved()
        assert d.is_resolved()
        assert d.requirements[0].supplier is s1.module_capability
        assert report.status(s2.identity) is ResolutionStatus.UNRESOLVED
        assert report.reasons(s2.identity)[0].kind is FailureKind.SINGLETON_CONFLICT

    def test_dependent_alone_pulls_in_older_version(self, state, install):
        s1 = install("S", "1.0.0", singleton=True, exports=[{"name": "s.api", "version": "1.0"}])
        s2 = install("S", "2.0.0", singleton=True, exports=[{"name": "s.api", "version": "2.0"}])
        d = install("D", imports=[{"name": "s.api", "range": "[1.0,2.0)"}])

        report = state.resolve([d])

        assert report.is_resolved(d.identity)
        assert s1.is_resolved()
        assert not s2.is_resolved()
        assert report[s1.identity].resolved

    def test_resolved_holder_excludes_other_versions(self, state, install):
        install("S", "1.0.0", singleton=True)
        s2 = install("S", "2.0.0", singleton=True)
        state.resolve([s2])
        d = install("D", requires=[{"name": "S", "range": "[1.0,2.0)"}])

        report = state.resolve([d])

        assert not d.is_resolved()
        (reason,) = report.reasons(d.identity)
        assert reason.kind is FailureKind.CONSISTENCY_EXCLUDED
        assert reason.requirement_name == "S"
        assert reason.candidates_existed
        assert s2.is_resolved()

    def test_non_singleton_versions_coexist(self, state, install):
        a1 = install("A", "1.0.0")
        a2 = install("A", "2.0.0")
        s = install("A", "3.0.0", singleton=True)

        state.resolve()

        assert a1.is_resolved() and a2.is_resolved() and s.is_resolved()

    def test_singleton_count_never_exceeds_one(self, state, install):
        for version in ("1.0.0", "1.1.0", "2.0.0", "3.0.0"):
            install("S", version, singleton=True)
        install("D1", requires=[{"name": "S", "range": "[1.0,1.1)"}])
        install("D2", requires=[{"name": "S", "range": "[3.0,4.0)"}])

        state.resolve()
        state.resolve()

        assert len(resolved_singletons(state, "S")) == 1
