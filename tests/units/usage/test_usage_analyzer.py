"""Tests for UsageAnalyzer on small program models."""

import pytest

from racecov.checker.usage_analyzer import ReachabilityPredicate, UsageAnalyzer
from racecov.config import AnalysisConfig, SkippedVariables
from racecov.core.models import ThreadRelation
from racecov.ir.control_flow_graph import ProgramCFG
from racecov.utils import FixpointDivergenceError, RefinementError
from usage_builders import locks, read, states, usage, write


def analyze(program_dict, **config):
    analyzer = UsageAnalyzer(ProgramCFG.from_dict(program_dict), AnalysisConfig(**config))
    analyzer.analyze()
    return analyzer


def rendered(analyzer, location):
    return [p.render() for p in analyzer.store.points(location)]


def race_pairs(races, location=None):
    return sorted((r.location, *sorted((r.first.thread_id, r.second.thread_id)))
                  for r in races if location in (None, r.location))


class TestThreadTest01:
    """main creates t1 and then t2."""

    def test_computed_facts_match_annotations(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        computed = {(p.location, p.render()) for p in analyzer.store.history}
        assert ("d", "WRITE:[t1:{t1=CREATED_THREAD},[]]") in computed
        assert ("g", "WRITE:[main:{},[]]") in computed
        assert ("x", "WRITE:[main:{t1=PARENT_THREAD},[]]") in computed
        assert ("x", "WRITE:[t2:{t1=PARENT_THREAD,t2=CREATED_THREAD},[]]") in computed
        assert ("d", "READ:[t2:{t1=PARENT_THREAD,t2=CREATED_THREAD},[]]") in computed

    def test_main_write_is_covered_by_later_thread(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        assert rendered(analyzer, "x") == ["WRITE:[t2:{t1=PARENT_THREAD,t2=CREATED_THREAD},[]]"]

    def test_equal_facts_keep_both_sites(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        t2_write = usage("g", 'WRITE', 't2', states(t1='P', t2='C'))
        assert [s.line_start for s in analyzer.store.sites(t2_write)] == [21, 24]

    def test_races(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        assert race_pairs(analyzer.find_races()) == [
            ("c", "main", "t1"),
            ("d", "main", "t1"),
            ("d", "t1", "t2"),
            ("g", "t1", "t2"),
        ]

    def test_false_unsafe(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        analyzer.mark_false_unsafe("d")
        assert {r.location for r in analyzer.find_races()} == {"c", "g"}
        analyzer.reset_false_unsafes()
        assert {r.location for r in analyzer.find_races()} == {"c", "d", "g"}

    def test_remove_usage_restores_covered(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        assert analyzer.remove_usage(usage("x", 'WRITE', 't2', states(t1='P', t2='C')))
        assert rendered(analyzer, "x") == ["WRITE:[main:{t1=PARENT_THREAD},[]]"]

    def test_skipped_variables(self, thread_test01_program):
        analyzer = analyze(thread_test01_program, skipped_variables=SkippedVariables(by_name=["g"]))
        assert "g" not in analyzer.store.locations()
        assert analyzer.statistics.skipped_usages == 5

    def test_results(self, thread_test01_program):
        analyzer = analyze(thread_test01_program)
        results = analyzer.get_analysis_results()
        assert results['metrics']['num_threads'] == 3
        assert results['metrics']['num_race_candidates'] == 4
        assert results['threads']['t2']['entry_state'] == states(t1='P', t2='C')
        assert results['threads']['t2']['creator'] == 'main'
        assert set(results['usages']) == {"c", "d", "g", "x"}


class TestCreationChain:
    """main -> t1 -> t3 -> t4."""

    def test_nested_thread_state(self, thread_test06_program):
        analyzer = analyze(thread_test06_program)
        t4_points = [p for p in analyzer.store.points("x") if p.thread_id == "t4"]
        assert [p.render() for p in t4_points] == [
            "WRITE:[t4:{t1=CREATED_THREAD,t3=CREATED_THREAD,t4=CREATED_THREAD},[]]"
        ]
        assert analyzer.thread_tracker.is_ancestor("t1", "t4")

    def test_nested_thread_races_with_sibling(self, thread_test06_program):
        analyzer = analyze(thread_test06_program)
        assert ("x", "t2", "t4") in race_pairs(analyzer.find_races())

    def test_refine_drops_descendants(self, thread_test06_program):
        analyzer = analyze(thread_test06_program)
        analyzer.refine(ReachabilityPredicate("t1", blocked_nodes=frozenset({"thread1:1"})))
        threads = {p.thread_id for p in analyzer.store.points()}
        assert "t4" not in threads
        assert "t3" not in analyzer.thread_functions
        assert "WRITE:[t1:{t1=CREATED_THREAD},[]]" in rendered(analyzer, "d")
        assert analyzer.statistics.refinements == 1

    def test_main_write_after_fork_races_nested_thread(self, thread_test06_program):
        thread_test06_program["functions"]["thread2"] = {"nodes": [read("d", 23)]}
        analyzer = analyze(thread_test06_program)
        assert rendered(analyzer, "x") == [
            "WRITE:[main:{t1=PARENT_THREAD},[]]",
            "WRITE:[t4:{t1=CREATED_THREAD,t3=CREATED_THREAD,t4=CREATED_THREAD},[]]",
        ]
        assert race_pairs(analyzer.find_races(), "x") == [("x", "main", "t4")]


class TestGrandchildThreads:
    """An ancestor's later accesses against threads forked below its child."""

    def test_main_races_grandchild(self, grandchild_program):
        analyzer = analyze(grandchild_program)
        assert rendered(analyzer, "x") == [
            "WRITE:[main:{t1=PARENT_THREAD},[]]",
            "WRITE:[t3:{t1=CREATED_THREAD,t3=CREATED_THREAD},[]]",
        ]
        assert race_pairs(analyzer.find_races()) == [("x", "main", "t3")]

    def test_join_does_not_order_unjoined_grandchild(self, joined_parent_program):
        analyzer = analyze(joined_parent_program)
        assert "WRITE:[main:{t1=JOINED_THREAD},[]]" in rendered(analyzer, "x")
        assert race_pairs(analyzer.find_races()) == [("x", "main", "t3"), ("x", "t1", "t3")]

    def test_join_of_grandchild_by_its_creator(self, joined_parent_program):
        thread1 = joined_parent_program["functions"]["thread1"]["nodes"]
        thread1.insert(1, {"op": "join", "thread": "t3", "line": 4})
        analyzer = analyze(joined_parent_program)
        assert "WRITE:[t1:{t1=CREATED_THREAD,t3=JOINED_THREAD},[]]" in rendered(analyzer, "x")
        assert race_pairs(analyzer.find_races()) == [("x", "main", "t3")]


class TestRefinement:
    """A race disproved by refinement disappears after re-traversal."""

    @pytest.fixture
    def thread_test05_program(self, thread_test01_program):
        functions = thread_test01_program["functions"]
        functions["thread2"]["nodes"] = functions["thread2"]["nodes"][1:]
        functions["thread2"]["edges"] = functions["thread2"]["edges"][1:]
        functions["main"]["nodes"] = [n for n in functions["main"]["nodes"] if n.get("line") != 36]
        return thread_test01_program

    def test_refine_removes_infeasible_write(self, thread_test05_program):
        analyzer = analyze(thread_test05_program)
        assert ("g", "t1", "t2") in race_pairs(analyzer.find_races())

        analyzer.refine(ReachabilityPredicate("t2", blocked_edges=frozenset({("t2_if", "t2_g2")})))
        assert ("g", "t1", "t2") not in race_pairs(analyzer.find_races())
        assert rendered(analyzer, "g") == ["WRITE:[t1:{t1=CREATED_THREAD},[]]"]

    def test_refine_unknown_thread(self, thread_test05_program):
        analyzer = analyze(thread_test05_program)
        with pytest.raises(RefinementError):
            analyzer.refine(ReachabilityPredicate("t9"))

    def test_refine_before_analyze(self, thread_test05_program):
        analyzer = UsageAnalyzer(ProgramCFG.from_dict(thread_test05_program))
        with pytest.raises(RefinementError):
            analyzer.refine(ReachabilityPredicate("t2"))


class TestLocks:

    def test_same_lock_no_race(self, locked_program):
        analyzer = analyze(locked_program)
        assert rendered(analyzer, "g") == [
            "WRITE:[t1:{t1=CREATED_THREAD},[m]]",
            "WRITE:[t2:{t1=PARENT_THREAD,t2=CREATED_THREAD},[m]]",
        ]
        assert analyzer.find_races() == []

    def test_aliased_unlock_does_not_hide_race(self, aliased_lock_program):
        analyzer = analyze(aliased_lock_program)
        points = {p.thread_id: p for p in analyzer.store.points("g")}
        # ambiguous unlock through p keeps both mutexes
        assert points["t1"].lock_set == locks("m1", "m2")
        assert points["t2"].lock_set == locks(("m1", "m2"))
        assert race_pairs(analyzer.find_races()) == [("g", "t1", "t2")]


class TestLoops:
    """Thread creation inside a loop."""

    def test_loop_creation_is_self_parallel(self, loop_creation_program):
        analyzer = analyze(loop_creation_program)
        (point,) = analyzer.store.points("g")
        assert point.thread_states["w"] == ThreadRelation.SELF_PARALLEL
        races = analyzer.find_races()
        assert len(races) == 1
        assert races[0].first == races[0].second

    def test_widening(self, loop_creation_program):
        analyzer = analyze(loop_creation_program, widening_threshold=0)
        assert analyzer.statistics.widenings >= 1
        assert analyzer.store.points("g")[0].is_self_parallel

    def test_iteration_guard(self, loop_creation_program):
        with pytest.raises(FixpointDivergenceError):
            analyze(loop_creation_program, max_iterations=2)

    def test_recursive_thread(self):
        program = {
            "functions": {
                "worker": {"nodes": [write("g", 3), {"op": "create", "thread": "w", "function": "worker"}]},
                "main": {"nodes": [{"op": "create", "thread": "w", "function": "worker"}]},
            }
        }
        analyzer = analyze(program)
        assert analyzer.entry_state("w") == states(w='S')
        assert rendered(analyzer, "g") == ["WRITE:[w:{w=SELF_PARALLEL_THREAD},[]]"]


if __name__ == "__main__":
    pytest.main([__file__])
