"""
공정 트리 - 솔버가 찾은 해답을 시각화 쪽에 넘기기 위한 형태로 바꾸는 모듈

해답 문자열 형식: '1=CuCuCuCu;1:cut:2,3'
 - 'id=코드' 는 시작 도형
 - '입력ids:연산:출력ids' 는 연산 한 단계 (페인터/크리스탈은 '입력id,색:연산:출력id')
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple

from i18n import t
from operations import Operation, ShapeOperationConfig, DEFAULT_CONFIG, apply_operation_codes

STEP_SEPARATOR = ";"


class ParsedStep:
    """해답 문자열에서 읽은 연산 한 단계 (도형 코드는 아직 모름)"""

    def __init__(self, operation: Operation, input_ids: List[int], output_ids: List[int], color: Optional[str] = None):
        self.operation = operation
        self.input_ids = input_ids
        self.output_ids = output_ids
        self.color = color

    def __repr__(self) -> str:
        return f"ParsedStep({self.operation.token}, in={self.input_ids}, out={self.output_ids}, color={self.color})"


def format_solution(starting_shapes: Sequence[Tuple[int, str]], steps: Sequence) -> str:
    parts = [f"{shape_id}={code}" for shape_id, code in starting_shapes]
    parts.extend(step.to_string() for step in steps)
    return STEP_SEPARATOR.join(parts)


def parse_solution(text: str) -> Tuple[List[Tuple[int, str]], List[ParsedStep]]:
    """해답 문자열을 (시작 도형 목록, 단계 목록) 으로 해석합니다."""
    starting: List[Tuple[int, str]] = []
    steps: List[ParsedStep] = []
    if not text or not text.strip():
        raise ValueError(t("error.solution.empty"))

    for raw in text.strip().split(STEP_SEPARATOR):
        if '=' in raw:
            shape_id, code = raw.split('=', 1)
            starting.append((_parse_id(shape_id, raw), code))
            continue

        fields = raw.split(':')
        if len(fields) != 3:
            raise ValueError(t("error.solution.step", step=raw))
        input_part, token, output_part = fields
        operation = Operation.from_token(token)
        inputs = input_part.split(',')
        color = None
        if operation.needs_color:
            if len(inputs) != 2:
                raise ValueError(t("error.solution.step", step=raw))
            inputs, color = inputs[:1], inputs[1]
        input_ids = [_parse_id(i, raw) for i in inputs]
        output_ids = [_parse_id(o, raw) for o in output_part.split(',')]
        if len(input_ids) != operation.inputs:
            raise ValueError(t("error.solution.step", step=raw))
        steps.append(ParsedStep(operation, input_ids, output_ids, color))

    return starting, steps


def _parse_id(value: str, raw: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(t("error.solution.step", step=raw)) from None


def replay_solution(text: str, config: ShapeOperationConfig = DEFAULT_CONFIG) -> Dict[int, str]:
    """해답을 처음부터 다시 적용해 id → 도형 코드 맵을 만듭니다."""
    starting, steps = parse_solution(text)
    id_to_shape = dict(starting)
    for step in steps:
        missing = [i for i in step.input_ids if i not in id_to_shape]
        if missing:
            raise ValueError(t("error.solution.unknown_id", ids=", ".join(str(i) for i in missing)))
        outputs = apply_operation_codes(step.operation, [id_to_shape[i] for i in step.input_ids], config, step.color)
        if len(outputs) != len(step.output_ids):
            raise ValueError(t("error.solution.output_count", operation=step.operation.value,
                               expected=len(outputs), got=len(step.output_ids)))
        for output_id, code in zip(step.output_ids, outputs):
            id_to_shape[output_id] = code
    return id_to_shape


# ==============================================================================
#  공정 트리 (그래프)
# ==============================================================================
class ProcessNode:
    """공정 트리의 단일 노드 - 도형 하나와 그것을 만든 연산"""

    def __init__(self, shape_code: str, operation: str = "", node_id: str = None, input_ids: List[str] = None,
                 color: Optional[str] = None):
        self.shape_code = shape_code
        self.operation = operation  # 이 노드를 만든 연산 이름 (시작 도형은 "")
        self.node_id = node_id or f"node_{id(self)}"
        self.input_ids = input_ids or []
        self.color = color

    def is_source(self) -> bool:
        return not self.operation

    def __repr__(self) -> str:
        return f"ProcessNode({self.node_id}, {self.shape_code!r}, {self.operation!r}, {self.input_ids})"


class ProcessTree:
    def __init__(self):
        self.nodes_map: Dict[str, ProcessNode] = {}
        self.root_ids: List[str] = []

    def add_node(self, node: ProcessNode):
        self.nodes_map[node.node_id] = node
        if node.is_source():
            self.root_ids.append(node.node_id)

    def final_node_ids(self) -> List[str]:
        """다른 노드의 입력으로 쓰이지 않은 노드들 (최종 산출물)"""
        used = {input_id for node in self.nodes_map.values() for input_id in node.input_ids}
        return [node_id for node_id in self.nodes_map if node_id not in used]

    def tree_to_data(self) -> Dict:
        """
        딕셔너리 형태로 변환합니다.

        {
            "nodes": {
                "ID1": {"shape_code": "CuCuCuCu", "operation": "", "input_ids": [], "color": None},
                "ID2": {"shape_code": "----CuCu", "operation": "cutter", "input_ids": ["ID1"], "color": None}
            },
            "root_ids": ["ID1"]
        }
        """
        nodes = {
            node_id: {
                "shape_code": node.shape_code,
                "operation": node.operation,
                "input_ids": list(node.input_ids),
                "color": node.color,
            }
            for node_id, node in self.nodes_map.items()
        }
        return {"nodes": nodes, "root_ids": list(self.root_ids)}


def _node_id(shape_id: int) -> str:
    return f"ID{shape_id}"


def build_process_tree(result) -> Optional[ProcessTree]:
    """SolverResult 로부터 공정 트리를 만듭니다. 해답이 없으면 None."""
    if not result.is_solved:
        return None
    tree = ProcessTree()
    for shape_id, code in result.starting_shapes:
        tree.add_node(ProcessNode(code, "", _node_id(shape_id)))
    for step in result.steps:
        input_ids = [_node_id(shape_id) for shape_id, _ in step.inputs]
        for shape_id, code in step.outputs:
            tree.add_node(ProcessNode(code, step.operation.value, _node_id(shape_id), input_ids, step.color))
    return tree


def build_tree_from_data(tree_data: Dict) -> Optional[ProcessTree]:
    """tree_to_data() 결과를 다시 ProcessTree 로 변환합니다."""
    if not isinstance(tree_data, dict) or "nodes" not in tree_data or "root_ids" not in tree_data:
        return None

    tree = ProcessTree()
    for node_id, node_data in tree_data["nodes"].items():
        tree.nodes_map[node_id] = ProcessNode(
            node_data.get("shape_code", ""),
            node_data.get("operation", ""),
            node_id,
            node_data.get("input_ids", []),
            node_data.get("color"),
        )
    tree.root_ids = list(tree_data["root_ids"])
    return tree
