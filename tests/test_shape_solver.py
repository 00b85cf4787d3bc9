"""
도형 솔버 테스트 - 휴리스틱, 목표 판정, 탐색 시나리오, 취소
"""
import json

import pytest

from operations import Operation
from process_tree import replay_solution
from shape_solver import (
    ShapeSolver, SolverConfig, SolveStatus, solve,
    get_crystal_colors_in_shape, analyze_shape_components,
)
from shape import Shape


class RecordingWorker:
    """로그와 진행 보고를 모아두는 worker. cancel_after 번째 batch_done 에서 취소를 요청합니다."""

    def __init__(self, cancel_after=None):
        self.is_cancelled = False
        self.cancel_after = cancel_after
        self.logs = []
        self.progress = []

    def log(self, msg, verbose=False):
        self.logs.append((msg, verbose))

    def batch_done(self, progress):
        self.progress.append(progress)
        if self.cancel_after is not None and len(self.progress) >= self.cancel_after:
            self.is_cancelled = True


class TestSolverConfig:

    def test_defaults(self):
        config = SolverConfig()
        assert config.max_shape_layers == 4
        assert config.max_states_per_level is None
        assert config.max_depth is None
        assert config.batch_size == 50
        assert not config.prevent_waste
        assert not config.orientation_sensitive

    def test_from_dict(self):
        config = SolverConfig.from_dict({"max_shape_layers": 5, "prevent_waste": True})
        assert config.max_shape_layers == 5
        assert config.operation_config.max_shape_layers == 5
        assert config.prevent_waste

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValueError):
            SolverConfig.from_dict({"max_layers": 5})

    @pytest.mark.parametrize("kwargs", [
        {"max_shape_layers": 0},
        {"max_states_per_level": 0},
        {"max_depth": -1},
        {"batch_size": 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            SolverConfig(**kwargs)

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "solver.json"
        path.write_text(json.dumps({"max_states_per_level": 100, "max_depth": 6}), encoding="utf-8")
        config = SolverConfig.from_json_file(str(path))
        assert config.max_states_per_level == 100
        assert config.max_depth == 6

    def test_from_json_file_requires_object(self, tmp_path):
        path = tmp_path / "solver.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            SolverConfig.from_json_file(str(path))

    def test_to_dict_round_trip(self):
        config = SolverConfig(max_shape_layers=3, max_depth=4, orientation_sensitive=True)
        assert SolverConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()


class TestSolverSetup:

    def test_requires_starting_shapes(self):
        with pytest.raises(ValueError):
            ShapeSolver([], "CuCuCuCu", ["cutter"])

    def test_rejects_malformed_codes(self):
        with pytest.raises(ValueError):
            ShapeSolver(["CuCuCu"], "CuCuCuCu", ["cutter"])
        with pytest.raises(ValueError):
            ShapeSolver(["CuCuCuCu"], "XuCuCuCu", ["cutter"])

    def test_rejects_unknown_operation(self):
        with pytest.raises(ValueError):
            ShapeSolver(["CuCuCuCu"], "CuCuCuCu", ["trash"])

    def test_requires_operations(self):
        with pytest.raises(ValueError):
            ShapeSolver(["CuCuCuCu"], "CuCuCuCu", [])

    def test_operations_in_fixed_order(self):
        solver = ShapeSolver(["CuCuCuCu"], "CuCuCuCu", ["stacker", Operation.CUTTER, "cutter"])
        assert solver.operations == [Operation.CUTTER, Operation.STACKER]


class TestHeuristics:

    def test_components(self):
        assert analyze_shape_components("CuRu----:Cr------") == {"Cu", "C-", "Ru", "R-", "Cr"}

    def test_similarity(self):
        solver = ShapeSolver(["CuCuCuCu"], "CuCuCuCu", ["cutter"])
        assert solver.calculate_shape_similarity("CuCuCuCu") == 1.0
        assert solver.calculate_shape_similarity("RuRuRuRu") == pytest.approx(0.3)
        assert solver.calculate_shape_similarity("CuCuCuCu:RuRuRuRu") == pytest.approx(0.5)

    def test_state_heuristic(self):
        solver = ShapeSolver(["CuCuCuCu"], "CuCu----", ["cutter"])
        assert solver.calculate_state_heuristic(["CuCu----", "----CuCu"]) == pytest.approx(1180)
        assert solver.calculate_state_heuristic(["RuRuRuRu"]) == pytest.approx(290)

    def test_state_key_is_order_independent(self):
        key = ShapeSolver.get_state_key(["B", "A", "B"])
        assert key == (("A", 1), ("B", 2))
        assert key == ShapeSolver.get_state_key(["B", "B", "A"])


class TestGoal:

    def test_any_rotation_matches(self):
        solver = ShapeSolver(["CuCuCuCu"], "Cu------", ["cutter"])
        assert solver.get_acceptable_codes() == {"Cu------", "--Cu----", "----Cu--", "------Cu"}
        assert solver.is_goal_state(["--Cu----"])
        assert solver.is_goal_state(["Cu------", "RuRuRuRu"])

    def test_orientation_sensitive(self):
        config = SolverConfig(orientation_sensitive=True)
        solver = ShapeSolver(["CuCuCuCu"], "Cu------", ["cutter"], config)
        assert not solver.is_goal_state(["--Cu----"])
        assert solver.is_goal_state(["Cu------"])

    def test_prevent_waste(self):
        config = SolverConfig(prevent_waste=True)
        solver = ShapeSolver(["CuCuCuCu"], "Cu------", ["cutter"], config)
        assert not solver.is_goal_state(["Cu------", "RuRuRuRu"])
        assert solver.is_goal_state(["Cu------", "--------"])
        assert not solver.is_goal_state(["--------"])


class TestColorCandidates:

    def test_paint_colors_follow_target(self):
        solver = ShapeSolver(["CuCuCuCu"], "CrCgRb--", ["painter"])
        assert solver.get_paint_colors("CuCuCuCu") == ["r", "g"]
        assert solver.get_paint_colors("RuSu----") == ["b"]
        assert solver.get_paint_colors("P-crSuSu") == []

    def test_crystal_colors(self):
        assert get_crystal_colors_in_shape(Shape.from_string("crcg----")) == ["r", "g"]
        assert get_crystal_colors_in_shape(Shape.from_string("CuCuCuCu")) == ["u"]

    def test_colorless_parts_are_not_color_candidates(self):
        assert get_crystal_colors_in_shape(Shape.from_string("c-cr----")) == ["r"]
        solver = ShapeSolver(["CuCuCuCu"], "C-Cr----", ["painter"])
        assert solver.get_paint_colors("CuCuCuCu") == ["r"]


class TestSolveScenarios:

    def test_already_solved(self):
        result = solve(["RuRuRuRu"], "RuRuRuRu", ["rotateCW", "rotateCCW", "rotate180"])
        assert result.status is SolveStatus.SOLVED
        assert result.depth == 0
        assert result.steps == []
        assert result.solution_string == "1=RuRuRuRu"

    def test_single_cut(self):
        result = solve(["CuCuCuCu"], "CuCu----", ["cutter"])
        assert result.is_solved
        assert result.depth == 1
        step = result.steps[0]
        assert step.operation is Operation.CUTTER
        assert step.inputs == [(1, "CuCuCuCu")]
        assert step.outputs == [(2, "----CuCu"), (3, "CuCu----")]
        assert result.solution_string == "1=CuCuCuCu;1:cut:2,3"

    def test_stacker_tries_both_orders(self):
        result = solve(["CuCuCuCu", "RuRuRuRu"], "RuRuRuRu:CuCuCuCu", ["stacker"])
        assert result.is_solved
        assert result.solution_string == "1=CuCuCuCu;2=RuRuRuRu;2,1:stack:4"

    def test_painter(self):
        result = solve(["CuCuCuCu"], "CrCrCrCr", ["painter"])
        assert result.solution_string == "1=CuCuCuCu;1,r:paint:2"

    def test_crystal_generator(self):
        result = solve(["Cu------"], "Cucrcrcr", ["crystalGenerator"])
        assert result.solution_string == "1=Cu------;1,r:crystal:2"

    def test_multi_step_solution_replays(self):
        solver = ShapeSolver(["CuCuCuCu"], "Cu------", ["cutter", "rotateCW"])
        result = solver.solve()
        assert result.is_solved
        assert result.depth == 3
        assert len(result.steps) == 3

        replayed = replay_solution(result.solution_string)
        for step in result.steps:
            for shape_id, code in step.outputs:
                assert replayed[shape_id] == code
        final_codes = [replayed[shape_id] for shape_id, _ in result.steps[-1].outputs]
        assert any(code in solver.get_acceptable_codes() for code in final_codes)

    def test_incompatible_inputs_are_skipped(self):
        solver = ShapeSolver(["CuCuCuCu", "RuRuRuRuRuRu"], "CuCuRuRu", ["swapper"])
        result = solver.solve()
        assert result.status is SolveStatus.EXHAUSTED
        assert result.steps == []
        assert result.visited_count == 1
        assert result.solution_string is None
        assert None in solver.operation_cache.values()

    def test_incompatible_inputs_do_not_block_other_operations(self):
        result = solve(["CuCuCuCu", "RuRuRuRuRuRu"], "CuCu----", ["swapper", "cutter"])
        assert result.is_solved
        assert result.steps[0].operation is Operation.CUTTER

    def test_exhausted(self):
        result = solve(["CuCuCuCu"], "RuRuRuRu", ["rotateCW"])
        assert result.status is SolveStatus.EXHAUSTED
        assert result.depth == 1
        assert result.steps == []

    def test_max_depth(self):
        config = SolverConfig(max_depth=2)
        result = solve(["Cu------"], "RuRuRuRu", ["rotateCW"], config)
        assert result.status is SolveStatus.EXHAUSTED
        assert result.depth == 2
        assert len(result.best_heuristic_by_depth) == 3

    def test_max_depth_zero_only_checks_start(self):
        config = SolverConfig(max_depth=0)
        assert solve(["CuCuCuCu"], "CuCuCuCu", ["cutter"], config).is_solved
        assert solve(["CuCuCuCu"], "CuCu----", ["cutter"], config).status is SolveStatus.EXHAUSTED

    def test_larger_cap_never_lowers_best_score(self):
        args = (["CuCuCuCu", "RuRuRuRu"], "SgSgSgSg:CrCrCrCr", ["cutter", "stacker", "rotateCW"])
        capped = solve(*args, SolverConfig(max_states_per_level=1, max_depth=2))
        full = solve(*args, SolverConfig(max_depth=2))
        assert capped.best_heuristic_by_depth[1] == full.best_heuristic_by_depth[1]
        assert capped.best_heuristic_by_depth[2] <= full.best_heuristic_by_depth[2]

    def test_solve_is_repeatable(self):
        solver = ShapeSolver(["CuCuCuCu", "RuRuRuRu"], "RuRuRuRu:CuCuCuCu", ["stacker"])
        assert solver.solve().solution_string == solver.solve().solution_string


class TestWorkerInteraction:

    def test_cancel_from_batch_boundary(self):
        worker = RecordingWorker(cancel_after=1)
        result = solve(["CuCuCuCu"], "CrCrCrCr:RuRuRuRu", ["cutter", "rotateCW"], worker=worker)
        assert result.status is SolveStatus.CANCELLED
        assert result.steps == []
        assert result.solution_string is None
        assert worker.progress[0].depth == 0

    def test_cancelled_before_start(self):
        worker = RecordingWorker()
        worker.is_cancelled = True
        result = solve(["CuCuCuCu"], "CuCuCuCu", ["cutter"], worker=worker)
        assert result.status is SolveStatus.CANCELLED

    def test_solver_cancel(self):
        solver = ShapeSolver(["CuCuCuCu"], "CuCuCuCu", ["cutter"])
        solver.cancel()
        assert solver.is_cancelled
        assert solver.solve().status is SolveStatus.CANCELLED

    def test_cancel_applies_to_one_run(self):
        solver = ShapeSolver(["CuCuCuCu"], "CuCu----", ["cutter"])
        solver.cancel()
        assert solver.solve().status is SolveStatus.CANCELLED
        assert not solver.is_cancelled
        assert solver.solve().solution_string == "1=CuCuCuCu;1:cut:2,3"

    def test_progress_reported_per_batch(self):
        worker = RecordingWorker()
        config = SolverConfig(batch_size=1, max_depth=2)
        solve(["Cu------"], "RuRuRuRu", ["rotateCW"], config, worker=worker)
        assert [p.depth for p in worker.progress] == [0, 1, 1, 2]

    def test_logs_go_to_worker(self):
        worker = RecordingWorker()
        solve(["CuCuCuCu"], "CuCu----", ["cutter"], worker=worker)
        assert any(not verbose for _, verbose in worker.logs)

    def test_log_callback(self):
        import shape_solver
        messages = []
        shape_solver.set_log_callback(messages.append)
        try:
            solve(["CuCuCuCu"], "CuCu----", ["cutter"])
        finally:
            shape_solver.set_log_callback(None)
        assert messages
