"""
도형 솔버 - 시작 도형들에서 목표 도형까지의 건물 작동 순서를 찾는 모듈

깊이별(레벨 동기) 너비 우선 탐색에 휴리스틱 점수로 레벨마다 상위 K 개만 남기는
빔 형태의 가지치기를 더한 구조입니다. 취소와 진행 보고는 worker 객체를 통해
배치 경계마다 협조적으로 처리합니다.
"""

from __future__ import annotations
import itertools
import json
import time
from collections import Counter
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from i18n import t
from shape import Shape, UNPAINTABLE_SHAPES, PAINT_COLORS, CRYSTAL_CHAR, NOTHING_CHAR, SHAPE_LAYER_SEPARATOR, is_empty_code
from operations import Operation, ShapeOperationConfig, InvalidOperationInputs, apply_operation

ShapeRef = Tuple[int, str]  # (id, 도형 코드)

# --- 로깅 시스템 ---
_log_callback: Optional[Callable[[str], None]] = None


def _log(message: str):
    """로그 메시지를 출력합니다. 콜백이 설정되어 있지 않으면 아무것도 하지 않습니다."""
    if _log_callback is not None:
        _log_callback(message)


def set_log_callback(callback: Optional[Callable[[str], None]]):
    global _log_callback
    _log_callback = callback


class SolverCancelled(Exception):
    """탐색 도중 취소 요청을 감지했을 때 탐색을 풀어내기 위한 예외"""
    pass


class SolveStatus(Enum):
    SOLVED = "solved"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


# ==============================================================================
#  설정
# ==============================================================================
class SolverConfig:
    """탐색 설정값. 솔버의 모든 진입점에 명시적으로 넘깁니다."""
    DEFAULT_MAX_SHAPE_LAYERS = ShapeOperationConfig.DEFAULT_MAX_SHAPE_LAYERS
    DEFAULT_BATCH_SIZE = 50
    FIELDS = ('max_shape_layers', 'max_states_per_level', 'prevent_waste',
              'orientation_sensitive', 'max_depth', 'batch_size')

    def __init__(self, max_shape_layers: int = DEFAULT_MAX_SHAPE_LAYERS,
                 max_states_per_level: Optional[int] = None,
                 prevent_waste: bool = False,
                 orientation_sensitive: bool = False,
                 max_depth: Optional[int] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE):
        # max_shape_layers 검증은 ShapeOperationConfig 가 담당
        self.operation_config = ShapeOperationConfig(max_shape_layers)
        if max_states_per_level is not None and (not isinstance(max_states_per_level, int) or max_states_per_level < 1):
            raise ValueError(t("error.config.max_states", value=max_states_per_level))
        if max_depth is not None and (not isinstance(max_depth, int) or max_depth < 0):
            raise ValueError(t("error.config.max_depth", value=max_depth))
        if not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError(t("error.config.batch_size", value=batch_size))
        self.max_states_per_level = max_states_per_level
        self.prevent_waste = bool(prevent_waste)
        self.orientation_sensitive = bool(orientation_sensitive)
        self.max_depth = max_depth
        self.batch_size = batch_size

    @property
    def max_shape_layers(self) -> int:
        return self.operation_config.max_shape_layers

    @classmethod
    def from_dict(cls, data: Dict) -> SolverConfig:
        unknown = [key for key in data if key not in cls.FIELDS]
        if unknown:
            raise ValueError(t("error.config.unknown_keys", keys=", ".join(sorted(unknown))))
        return cls(**data)

    @classmethod
    def from_json_file(cls, path: str) -> SolverConfig:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(t("error.config.not_object", path=path))
        return cls.from_dict(data)

    def to_dict(self) -> Dict:
        return {name: getattr(self, name) for name in self.FIELDS}

    def __repr__(self) -> str:
        return f"SolverConfig({', '.join(f'{k}={v!r}' for k, v in self.to_dict().items())})"


# ==============================================================================
#  결과 타입
# ==============================================================================
class SolutionStep:
    """해답 경로의 한 단계. 입력/출력은 (id, 도형 코드) 쌍입니다."""

    def __init__(self, operation: Operation, inputs: Sequence[ShapeRef], outputs: Sequence[ShapeRef],
                 color: Optional[str] = None):
        self.operation = operation
        self.inputs = list(inputs)
        self.outputs = list(outputs)
        self.color = color

    def to_string(self) -> str:
        """'1:cut:2,3', '1,2:stack:3', '1,r:paint:2' 형식"""
        out_ids = ",".join(str(i) for i, _ in self.outputs)
        if self.operation.needs_color:
            return f"{self.inputs[0][0]},{self.color}:{self.operation.token}:{out_ids}"
        in_ids = ",".join(str(i) for i, _ in self.inputs)
        return f"{in_ids}:{self.operation.token}:{out_ids}"

    def __repr__(self) -> str:
        return f"SolutionStep({self.to_string()})"


class SolverProgress:
    def __init__(self, depth: int, level_size: int, processed_states: int, visited_count: int, elapsed: float):
        self.depth = depth
        self.level_size = level_size
        self.processed_states = processed_states
        self.visited_count = visited_count
        self.elapsed = elapsed

    def __repr__(self) -> str:
        return (f"SolverProgress(depth={self.depth}, level_size={self.level_size}, "
                f"processed={self.processed_states}, visited={self.visited_count})")


class SolverResult:
    def __init__(self, status: SolveStatus, steps: List[SolutionStep], starting_shapes: List[ShapeRef],
                 depth: int, visited_count: int, elapsed: float, best_heuristic_by_depth: List[float]):
        self.status = status
        self.steps = steps
        self.starting_shapes = starting_shapes
        self.depth = depth
        self.visited_count = visited_count
        self.elapsed = elapsed
        self.best_heuristic_by_depth = best_heuristic_by_depth

    @property
    def is_solved(self) -> bool:
        return self.status is SolveStatus.SOLVED

    @property
    def solution_string(self) -> Optional[str]:
        if not self.is_solved:
            return None
        from process_tree import format_solution
        return format_solution(self.starting_shapes, self.steps)

    def summary(self) -> str:
        if self.status is SolveStatus.SOLVED:
            return t("solver.status.solved", elapsed=f"{self.elapsed:.2f}", depth=self.depth, states=self.visited_count)
        if self.status is SolveStatus.CANCELLED:
            return t("solver.status.cancelled", states=self.visited_count)
        return t("solver.status.exhausted", depth=self.depth, states=self.visited_count)


class _SearchState:
    """탐색 상태. 경로는 부모 포인터와 마지막 단계로 복원합니다."""
    __slots__ = ('available', 'parent', 'step', 'depth', 'heuristic')

    def __init__(self, available: Tuple[ShapeRef, ...], parent: Optional[_SearchState],
                 step: Optional[SolutionStep], depth: int, heuristic: float):
        self.available = available
        self.parent = parent
        self.step = step
        self.depth = depth
        self.heuristic = heuristic

    def codes(self) -> List[str]:
        return [code for _, code in self.available]

    def path(self) -> List[SolutionStep]:
        steps = []
        node = self
        while node is not None and node.step is not None:
            steps.append(node.step)
            node = node.parent
        steps.reverse()
        return steps


# ==============================================================================
#  색 후보 좁히기
# ==============================================================================
def get_colors_in_shape(shape: Shape) -> Dict[str, List[str]]:
    """칠할 수 있는 조각 종류별로 도형에 쓰인 색 목록 (무색 제외, 등장 순서 유지)"""
    shape_color_map: Dict[str, List[str]] = {}
    for layer in shape.layers:
        for part in layer.parts:
            if part is None or part.shape in UNPAINTABLE_SHAPES or part.color == 'u' or part.color not in PAINT_COLORS:
                continue
            colors = shape_color_map.setdefault(part.shape, [])
            if part.color not in colors:
                colors.append(part.color)
    return shape_color_map


def get_valid_colors_for_shape(input_shape: Shape, target_color_map: Dict[str, List[str]]) -> List[str]:
    """입력 도형의 칠할 수 있는 조각과 같은 종류가 목표에서 가진 색들"""
    valid_colors: List[str] = []
    for layer in input_shape.layers:
        for part in layer.parts:
            if part is None or part.shape in UNPAINTABLE_SHAPES:
                continue
            for color in target_color_map.get(part.shape, []):
                if color not in valid_colors:
                    valid_colors.append(color)
    return valid_colors


def get_crystal_colors_in_shape(shape: Shape) -> List[str]:
    """목표의 크리스탈 색들. 크리스탈이 없으면 ['u']"""
    crystal_colors: List[str] = []
    for layer in shape.layers:
        for part in layer.parts:
            if (part is not None and part.shape == CRYSTAL_CHAR and part.color in PAINT_COLORS
                    and part.color not in crystal_colors):
                crystal_colors.append(part.color)
    return crystal_colors or ['u']


def analyze_shape_components(code: str) -> set:
    """휴리스틱용 구성요소 토큰: 'Cr' 같은 도형+색과 'C-' 같은 도형만 토큰"""
    components = set()
    for layer in code.split(SHAPE_LAYER_SEPARATOR):
        for i in range(0, len(layer), 2):
            component = layer[i:i + 2]
            if component == NOTHING_CHAR * 2:
                continue
            components.add(component)
            if len(component) == 2:
                components.add(component[0] + NOTHING_CHAR)
    return components


# ==============================================================================
#  솔버
# ==============================================================================
class ShapeSolver:
    # 깊이가 LOW_HEURISTIC_MIN_DEPTH 를 넘으면 점수가 LOW_HEURISTIC_CUTOFF 미만인 상태는 버림
    LOW_HEURISTIC_CUTOFF = -100
    LOW_HEURISTIC_MIN_DEPTH = 2
    # 출력 중 하나라도 유사도가 이 값을 넘어야 유망한 것으로 봄 (얕은 깊이는 예외)
    PROMISING_SIMILARITY = 0.1
    PROMISING_FREE_DEPTH = 3
    PAINT_PROMISING_FREE_DEPTH = 2
    # 깊은 곳에서는 조합 수를 유사도 상위 MAX_COMBOS_PER_OPERATION 개로 제한
    COMBO_PRUNE_DEPTH = 3
    MAX_COMBOS_PER_OPERATION = 20

    def __init__(self, starting_shapes: Sequence[str], target_shape: str,
                 operations: Iterable[Union[Operation, str]], config: Optional[SolverConfig] = None):
        if not starting_shapes:
            raise ValueError(t("error.solver.no_starting_shapes"))
        # 입력 코드는 여기서 한 번 해석해 잘못된 코드를 바로 드러낸다
        self.starting_shapes = [repr(Shape.from_string(code)) for code in starting_shapes]
        self._target_obj = Shape.from_string(target_shape)
        self.target_shape = repr(self._target_obj)
        self.config = config or SolverConfig()

        requested = {op if isinstance(op, Operation) else Operation.from_name(op) for op in operations}
        if not requested:
            raise ValueError(t("error.solver.no_operations"))
        self.operations = [op for op in Operation if op in requested]

        self.target_layers = self._target_obj.num_layers
        self.target_components = analyze_shape_components(self.target_shape)
        if self.config.orientation_sensitive:
            self.acceptable_codes = {self.target_shape}
        else:
            self.acceptable_codes = set(self._target_obj.rotations())
        self._target_color_map = get_colors_in_shape(self._target_obj)
        self._crystal_colors = get_crystal_colors_in_shape(self._target_obj)

        self.operation_cache: Dict[tuple, Optional[List[str]]] = {}
        self._similarity_cache: Dict[str, float] = {}
        self._paint_color_cache: Dict[str, List[str]] = {}
        self.next_id = len(self.starting_shapes) + 1
        self._worker = None
        self._cancel_requested = False
        self._processed_states = 0
        self._t0 = 0.0

    # --- 휴리스틱 ---
    def analyze_shape_components(self, code: str) -> set:
        return analyze_shape_components(code)

    def calculate_shape_similarity(self, code: str) -> float:
        """목표와의 유사도 (0~1). 0.7 * 자카드 지수 + 0.3 * 층 수 비율"""
        if code == self.target_shape:
            return 1.0
        cached = self._similarity_cache.get(code)
        if cached is not None:
            return cached

        components = analyze_shape_components(code)
        union = components | self.target_components
        if not union:
            similarity = 0.0
        else:
            jaccard = len(components & self.target_components) / len(union)
            num_layers = len(code.split(SHAPE_LAYER_SEPARATOR))
            layer_similarity = min(num_layers, self.target_layers) / max(num_layers, self.target_layers)
            similarity = jaccard * 0.7 + layer_similarity * 0.3
        self._similarity_cache[code] = similarity
        return similarity

    def calculate_state_heuristic(self, codes: Sequence[str]) -> float:
        """유사도 최대값 우선, 목표 구성요소 포함률 다음, 도형 개수는 감점"""
        max_similarity = 0.0
        has_target_components = 0.0
        for code in codes:
            max_similarity = max(max_similarity, self.calculate_shape_similarity(code))
            if self.target_components:
                common = analyze_shape_components(code) & self.target_components
                has_target_components += len(common) / len(self.target_components)
        return max_similarity * 1000 + has_target_components * 100 - len(codes) * 10

    # --- 목표 판정 / 상태 키 ---
    def get_acceptable_codes(self) -> set:
        return set(self.acceptable_codes)

    def is_goal_state(self, codes: Sequence[str]) -> bool:
        non_empty = [code for code in codes if not is_empty_code(code)]
        matching = [code for code in non_empty if code in self.acceptable_codes]
        if self.config.prevent_waste:
            return len(non_empty) > 0 and len(matching) == len(non_empty)
        return len(matching) > 0

    @staticmethod
    def get_state_key(codes: Sequence[str]) -> Tuple[Tuple[str, int], ...]:
        return tuple(sorted(Counter(codes).items()))

    # --- 색 후보 ---
    def get_paint_colors(self, code: str) -> List[str]:
        if code not in self._paint_color_cache:
            self._paint_color_cache[code] = get_valid_colors_for_shape(Shape.from_string(code), self._target_color_map)
        return self._paint_color_cache[code]

    def get_crystal_colors(self) -> List[str]:
        return list(self._crystal_colors)

    # --- 연산 캐시 ---
    def get_cached_operation(self, op: Operation, codes: Sequence[str], color: Optional[str] = None) -> Optional[List[str]]:
        """연산 결과를 캐시에서 찾거나 계산합니다. 적용할 수 없는 입력이면 None."""
        key = (op, tuple(codes), color, self.config.max_shape_layers)
        if key in self.operation_cache:
            return self.operation_cache[key]
        try:
            shapes = [Shape.from_string(code) for code in codes]
            result = [repr(s) for s in apply_operation(op, shapes, self.config.operation_config, color)]
        except InvalidOperationInputs as e:
            self._emit_log(t("log.solver.operation_skipped", operation=op.value, inputs=", ".join(codes), error=e),
                           verbose=True)
            result = None
        self.operation_cache[key] = result
        return result

    # --- 취소 / 진행 ---
    def cancel(self):
        """진행 중(또는 다음) 탐색 한 번을 취소합니다."""
        self._cancel_requested = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_requested or bool(self._worker is not None and getattr(self._worker, 'is_cancelled', False))

    def _check_cancelled(self):
        if self.is_cancelled:
            raise SolverCancelled()

    def _emit_log(self, message: str, verbose: bool = False):
        if not verbose:
            _log(message)
        if self._worker is not None and hasattr(self._worker, 'log'):
            self._worker.log(message, verbose=verbose)

    def _report_progress(self, depth: int, level_size: int, visited: Dict):
        if self._worker is not None and hasattr(self._worker, 'batch_done'):
            self._worker.batch_done(SolverProgress(depth, level_size, self._processed_states, len(visited),
                                                   time.perf_counter() - self._t0))

    def _allocate_id(self) -> int:
        new_id = self.next_id
        self.next_id += 1
        return new_id

    # --- 탐색 ---
    def solve(self, worker=None) -> SolverResult:
        """탐색을 실행합니다.

        Args:
            worker: 선택. is_cancelled 속성, log(msg, verbose) 와 batch_done(progress) 메서드를
                가질 수 있는 객체. batch_done 은 배치/깊이 경계마다 호출되는 양보 지점입니다.

        Returns:
            SolverResult: SOLVED / EXHAUSTED / CANCELLED 중 하나
        """
        self._worker = worker
        self._t0 = time.perf_counter()
        self._processed_states = 0
        self.next_id = len(self.starting_shapes) + 1

        initial = tuple((i + 1, code) for i, code in enumerate(self.starting_shapes))
        initial_codes = [code for _, code in initial]
        initial_state = _SearchState(initial, None, None, 0, self.calculate_state_heuristic(initial_codes))
        visited: Dict[tuple, int] = {self.get_state_key(initial_codes): 0}
        best_by_depth = [initial_state.heuristic]
        depth = 0

        self._emit_log(t("log.solver.start", target=self.target_shape, starting=", ".join(self.starting_shapes),
                         operations=", ".join(op.value for op in self.operations)))
        try:
            self._check_cancelled()
            if self.is_goal_state(initial_codes):
                return self._finish(SolveStatus.SOLVED, initial_state, 0, visited, best_by_depth)

            current_level = [initial_state]
            cap = self.config.max_states_per_level
            batch_size = self.config.batch_size
            while current_level:
                if self.config.max_depth is not None and depth >= self.config.max_depth:
                    self._emit_log(t("log.solver.max_depth", depth=depth))
                    break

                # 점수 내림차순 안정 정렬 후 상위 cap 개만 확장
                current_level.sort(key=lambda s: s.heuristic, reverse=True)
                if cap is not None and len(current_level) > cap:
                    current_level = current_level[:cap]
                self._emit_log(t("log.solver.level", depth=depth, states=len(current_level)), verbose=True)

                next_level: List[_SearchState] = []
                for batch_start in range(0, len(current_level), batch_size):
                    self._check_cancelled()
                    for state in current_level[batch_start:batch_start + batch_size]:
                        goal = self._expand_state(state, next_level, visited)
                        if goal is not None:
                            return self._finish(SolveStatus.SOLVED, goal, goal.depth, visited, best_by_depth)
                    self._report_progress(depth, len(next_level), visited)

                depth += 1
                if next_level:
                    best_by_depth.append(max(s.heuristic for s in next_level))
                self._report_progress(depth, len(next_level), visited)
                current_level = next_level

            return self._finish(SolveStatus.EXHAUSTED, None, depth, visited, best_by_depth)
        except SolverCancelled:
            return self._finish(SolveStatus.CANCELLED, None, depth, visited, best_by_depth)
        finally:
            # 취소 요청은 이번 탐색에서 소모됨
            self._worker = None
            self._cancel_requested = False

    def _finish(self, status: SolveStatus, goal: Optional[_SearchState], depth: int, visited: Dict,
                best_by_depth: List[float]) -> SolverResult:
        result = SolverResult(
            status=status,
            steps=goal.path() if goal is not None else [],
            starting_shapes=[(i + 1, code) for i, code in enumerate(self.starting_shapes)],
            depth=depth,
            visited_count=len(visited),
            elapsed=time.perf_counter() - self._t0,
            best_heuristic_by_depth=list(best_by_depth),
        )
        self._emit_log(result.summary())
        return result

    def _get_combinations(self, shapes: List[ShapeRef], k: int) -> List[Tuple[ShapeRef, ...]]:
        return list(itertools.combinations(shapes, k))

    def _is_promising(self, outputs: Sequence[str]) -> bool:
        return any(code == self.target_shape or self.calculate_shape_similarity(code) > self.PROMISING_SIMILARITY
                   for code in outputs)

    def _expand_state(self, state: _SearchState, next_level: List[_SearchState], visited: Dict) -> Optional[_SearchState]:
        """상태 하나에 모든 활성 연산을 적용합니다. 목표 상태를 만나면 그 상태를 반환합니다."""
        self._check_cancelled()
        self._processed_states += 1
        depth = state.depth
        valid_shapes = [ref for ref in state.available if not is_empty_code(ref[1])]

        for op in self.operations:
            self._check_cancelled()
            if len(state.available) < op.inputs:
                continue

            if op is Operation.CRYSTAL_GENERATOR:
                for ref in valid_shapes:
                    for color in self._crystal_colors:
                        self._check_cancelled()
                        outputs = self.get_cached_operation(op, (ref[1],), color)
                        if outputs is None:
                            continue
                        goal = self._process_state(state, (ref,), op, outputs, color, next_level, visited)
                        if goal is not None:
                            return goal

            elif op is Operation.PAINTER:
                for ref in valid_shapes:
                    for color in self.get_paint_colors(ref[1]):
                        self._check_cancelled()
                        outputs = self.get_cached_operation(op, (ref[1],), color)
                        if outputs is None:
                            continue
                        painted = outputs[0]
                        if (self.calculate_shape_similarity(painted) > self.PROMISING_SIMILARITY
                                or painted == self.target_shape or depth < self.PAINT_PROMISING_FREE_DEPTH):
                            goal = self._process_state(state, (ref,), op, outputs, color, next_level, visited)
                            if goal is not None:
                                return goal

            else:
                combos = self._get_combinations(valid_shapes, op.inputs)
                if depth > self.COMBO_PRUNE_DEPTH and len(combos) > self.MAX_COMBOS_PER_OPERATION:
                    combos.sort(key=lambda combo: sum(self.calculate_shape_similarity(code) for _, code in combo),
                                reverse=True)
                    combos = combos[:self.MAX_COMBOS_PER_OPERATION]

                for combo in combos:
                    self._check_cancelled()
                    # 스태커는 위/아래 순서를 모두 시도
                    orders = [combo, combo[::-1]] if op is Operation.STACKER else [combo]
                    for ordered in orders:
                        outputs = self.get_cached_operation(op, [code for _, code in ordered])
                        if outputs is None:
                            continue
                        if (op is not Operation.STACKER and depth >= self.PROMISING_FREE_DEPTH
                                and not self._is_promising(outputs)):
                            continue
                        goal = self._process_state(state, ordered, op, outputs, None, next_level, visited)
                        if goal is not None:
                            return goal
        return None

    def _process_state(self, state: _SearchState, combo: Sequence[ShapeRef], op: Operation, outputs: List[str],
                       color: Optional[str], next_level: List[_SearchState], visited: Dict) -> Optional[_SearchState]:
        """연산 결과로 새 상태를 만들어 다음 레벨에 넣습니다. 목표 상태면 큐에 넣지 않고 바로 반환합니다."""
        consumed_ids = {ref[0] for ref in combo}
        remaining = [ref for ref in state.available if ref[0] not in consumed_ids]
        codes = [code for _, code in remaining] + list(outputs)

        key = self.get_state_key(codes)
        existing_depth = visited.get(key)
        # 같거나 더 얕은 깊이에서 이미 본 상태면 건너뜀
        if existing_depth is not None and existing_depth <= state.depth + 1:
            return None

        new_shapes = [(self._allocate_id(), code) for code in outputs]
        step = SolutionStep(op, combo, new_shapes, color)
        heuristic = self.calculate_state_heuristic(codes)
        new_state = _SearchState(tuple(remaining + new_shapes), state, step, state.depth + 1, heuristic)

        if self.is_goal_state(codes):
            visited[key] = state.depth + 1
            return new_state

        if heuristic < self.LOW_HEURISTIC_CUTOFF and state.depth > self.LOW_HEURISTIC_MIN_DEPTH:
            return None

        visited[key] = state.depth + 1
        next_level.append(new_state)
        return None


def solve(starting_shapes: Sequence[str], target_shape: str, operations: Iterable[Union[Operation, str]],
          config: Optional[SolverConfig] = None, worker=None) -> SolverResult:
    """ShapeSolver 를 만들어 한 번 탐색하는 편의 함수"""
    return ShapeSolver(starting_shapes, target_shape, operations, config).solve(worker)
