"""
해답 문자열 / 공정 트리 테스트
"""
import pytest

from operations import Operation
from process_tree import (
    format_solution, parse_solution, replay_solution,
    ProcessNode, ProcessTree, build_process_tree, build_tree_from_data,
)
from shape_solver import SolutionStep, solve


class TestSolutionString:

    def test_format(self):
        steps = [
            SolutionStep(Operation.STACKER, [(1, "CuCuCuCu"), (2, "RuRuRuRu")], [(3, "CuCuCuCu:RuRuRuRu")]),
            SolutionStep(Operation.PAINTER, [(3, "CuCuCuCu:RuRuRuRu")], [(4, "CuCuCuCu:RrRrRrRr")], "r"),
        ]
        text = format_solution([(1, "CuCuCuCu"), (2, "RuRuRuRu")], steps)
        assert text == "1=CuCuCuCu;2=RuRuRuRu;1,2:stack:3;3,r:paint:4"

    def test_parse(self):
        starting, steps = parse_solution("1=CuCuCuCu;2=RuRuRuRu;1,2:stack:3;3,r:paint:4")
        assert starting == [(1, "CuCuCuCu"), (2, "RuRuRuRu")]
        assert steps[0].operation is Operation.STACKER
        assert steps[0].input_ids == [1, 2]
        assert steps[0].output_ids == [3]
        assert steps[1].operation is Operation.PAINTER
        assert steps[1].input_ids == [3]
        assert steps[1].color == "r"

    @pytest.mark.parametrize("text", [
        "",
        "1=CuCuCuCu;1:trash:2",
        "1=CuCuCuCu;1:cut",
        "1=CuCuCuCu;a:cut:2,3",
        "1=CuCuCuCu;1:stack:2",
        "1=CuCuCuCu;1:paint:2",
    ])
    def test_parse_malformed(self, text):
        with pytest.raises(ValueError):
            parse_solution(text)

    def test_replay(self):
        shapes = replay_solution("1=CuCuCuCu;2=RuRuRuRu;1,2:stack:3;3,r:paint:4")
        assert shapes[3] == "CuCuCuCu:RuRuRuRu"
        assert shapes[4] == "CuCuCuCu:RrRrRrRr"

    def test_replay_unknown_id(self):
        with pytest.raises(ValueError):
            replay_solution("1=CuCuCuCu;5:cut:2,3")

    def test_replay_output_count_mismatch(self):
        with pytest.raises(ValueError):
            replay_solution("1=CuCuCuCu;1:cut:2")


class TestProcessTree:

    def test_build_from_result(self):
        tree = build_process_tree(solve(["CuCuCuCu"], "CuCu----", ["cutter"]))
        assert tree.root_ids == ["ID1"]
        assert set(tree.nodes_map) == {"ID1", "ID2", "ID3"}
        assert tree.nodes_map["ID2"].operation == "cutter"
        assert tree.nodes_map["ID2"].input_ids == ["ID1"]
        assert tree.nodes_map["ID3"].shape_code == "CuCu----"
        assert tree.final_node_ids() == ["ID2", "ID3"]

    def test_unsolved_result_has_no_tree(self):
        assert build_process_tree(solve(["CuCuCuCu"], "RuRuRuRu", ["rotateCW"])) is None

    def test_data_round_trip(self):
        tree = build_process_tree(solve(["CuCuCuCu"], "CrCrCrCr", ["painter"]))
        data = tree.tree_to_data()
        assert data["nodes"]["ID2"] == {
            "shape_code": "CrCrCrCr", "operation": "painter", "input_ids": ["ID1"], "color": "r",
        }
        rebuilt = build_tree_from_data(data)
        assert rebuilt.tree_to_data() == data

    def test_build_from_invalid_data(self):
        assert build_tree_from_data({"nodes": {}}) is None
        assert build_tree_from_data([]) is None

    def test_source_nodes(self):
        tree = ProcessTree()
        tree.add_node(ProcessNode("CuCuCuCu", "", "A"))
        tree.add_node(ProcessNode("----CuCu", "cutter", "B", ["A"]))
        assert tree.root_ids == ["A"]
        assert tree.nodes_map["A"].is_source()
        assert not tree.nodes_map["B"].is_source()
