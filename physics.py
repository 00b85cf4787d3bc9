"""
연결성 / 중력 시뮬레이터

레이어 리스트를 직접 다루는 함수들입니다. make_layers_fall, break_crystals 는
전달받은 리스트를 수정하므로 호출자는 반드시 사본을 넘겨야 합니다.
"""

from __future__ import annotations
from typing import Callable, List, Optional, Set, Tuple

from shape import Shape, Layer, ShapePart, PIN_CHAR, CRYSTAL_CHAR

Coord = Tuple[int, int]
ConnectedFunc = Callable[[Optional[ShapePart], Optional[ShapePart]], bool]


def gravity_connected(part1: Optional[ShapePart], part2: Optional[ShapePart]) -> bool:
    """빈 칸이나 핀이 아니면 서로 붙어 있는 것으로 봅니다."""
    if part1 is None or part2 is None:
        return False
    return part1.shape != PIN_CHAR and part2.shape != PIN_CHAR


def crystals_fused(part1: Optional[ShapePart], part2: Optional[ShapePart]) -> bool:
    return (part1 is not None and part2 is not None
            and part1.shape == CRYSTAL_CHAR and part2.shape == CRYSTAL_CHAR)


def connected_single_layer(layer: Layer, index: int, connected_func: ConnectedFunc) -> List[int]:
    """index 에서 시작해 양방향(원형)으로 끊길 때까지 이어진 인덱스들을 반환합니다."""
    parts = layer.parts
    n = len(parts)
    if parts[index] is None:
        return []

    connected = [index]
    previous = index
    for i in range(index + 1, index + n):
        cur = i % n
        if not connected_func(parts[previous], parts[cur]):
            break
        connected.append(cur)
        previous = cur

    previous = index
    for i in range(index - 1, index - n, -1):
        cur = i % n
        # 한 바퀴 돌아 이미 포함된 칸을 만나면 중단
        if cur in connected:
            break
        if not connected_func(parts[previous], parts[cur]):
            break
        connected.append(cur)
        previous = cur

    return connected


def connected_multi_layer(layers: List[Layer], layer_index: int, part_index: int,
                          connected_func: ConnectedFunc) -> List[Coord]:
    """같은 층은 connected_single_layer 로, 위/아래 층은 같은 인덱스끼리 connected_func 로 확장하는 flood fill."""
    if layers[layer_index].parts[part_index] is None:
        return []

    connected = [(layer_index, part_index)]
    seen: Set[Coord] = {(layer_index, part_index)}
    # 탐색 중 리스트가 늘어나므로 인덱스로 순회
    i = 0
    while i < len(connected):
        cur_layer, cur_part = connected[i]
        i += 1

        for part_idx in connected_single_layer(layers[cur_layer], cur_part, connected_func):
            if (cur_layer, part_idx) not in seen:
                seen.add((cur_layer, part_idx))
                connected.append((cur_layer, part_idx))

        for neighbor_layer in (cur_layer - 1, cur_layer + 1):
            if not 0 <= neighbor_layer < len(layers):
                continue
            coord = (neighbor_layer, cur_part)
            if coord in seen:
                continue
            if connected_func(layers[cur_layer].parts[cur_part], layers[neighbor_layer].parts[cur_part]):
                seen.add(coord)
                connected.append(coord)

    return connected


def break_crystals(layers: List[Layer], layer_index: int, part_index: int) -> Set[Coord]:
    """(layer_index, part_index) 와 융합된 크리스탈 전체를 파괴하고 파괴된 좌표를 반환합니다."""
    shattered = set(connected_multi_layer(layers, layer_index, part_index, crystals_fused))
    for l, q in shattered:
        layers[l].parts[q] = None
    return shattered


def supported_parts(layers: List[Layer]) -> List[List[bool]]:
    """한 번의 지지 계산 패스. 각 좌표의 지지 여부를 담은 2차원 bool 표를 반환합니다.

    맨 아래층의 조각에서 출발해 지지를 전파합니다:
     - 바로 위 조각
     - 같은 층에서 중력으로 이어진 이웃
     - 바로 아래의 융합된 크리스탈
    더 이상 바뀌지 않을 때까지 반복하므로 결과는 평가 순서와 무관합니다.
    """
    supported = [[False] * len(layer) for layer in layers]
    pending: List[Coord] = []
    for q, part in enumerate(layers[0].parts if layers else []):
        if part is not None:
            supported[0][q] = True
            pending.append((0, q))

    while pending:
        l, q = pending.pop()
        cur = layers[l].parts[q]
        n = len(layers[l])

        candidates = []
        if l + 1 < len(layers):
            candidates.append((l + 1, q))
        for neighbor_q in ((q + 1) % n, (q - 1) % n):
            if gravity_connected(cur, layers[l].parts[neighbor_q]):
                candidates.append((l, neighbor_q))
        if l > 0 and crystals_fused(cur, layers[l - 1].parts[q]):
            candidates.append((l - 1, q))

        for nl, nq in candidates:
            if not supported[nl][nq] and layers[nl].parts[nq] is not None:
                supported[nl][nq] = True
                pending.append((nl, nq))

    return supported


def _separate_in_groups(layer: Layer) -> List[List[int]]:
    handled: Set[int] = set()
    groups = []
    for index in range(len(layer)):
        if index in handled:
            continue
        group = connected_single_layer(layer, index, gravity_connected)
        if group:
            groups.append(group)
            handled.update(group)
    return groups


def make_layers_fall(layers: List[Layer]) -> List[Layer]:
    """지지되지 않는 크리스탈은 깨고, 지지되지 않는 그룹은 한 덩어리로 떨어뜨립니다."""
    # 1차 지지 계산: 떠 있는 크리스탈은 떨어지면서 깨진다
    supported = supported_parts(layers)
    for l, layer in enumerate(layers):
        for q, part in enumerate(layer.parts):
            if part is not None and part.shape == CRYSTAL_CHAR and not supported[l][q]:
                layer.parts[q] = None

    # 크리스탈이 사라지면 지지 관계가 바뀌므로 다시 계산
    supported = supported_parts(layers)

    for layer_index in range(1, len(layers)):
        layer = layers[layer_index]
        for group in _separate_in_groups(layer):
            if any(supported[layer_index][q] for q in group):
                continue

            fall_to = layer_index
            while fall_to > 0 and all(layers[fall_to - 1].parts[q] is None for q in group):
                fall_to -= 1
            if fall_to == layer_index:
                continue

            for q in group:
                layers[fall_to].parts[q] = layer.parts[q]
                layer.parts[q] = None

    return layers


def clean_up_empty_upper_layers(layers: List[Layer]) -> List[Layer]:
    """맨 위의 빈 레이어들을 제거합니다. 전부 비었으면 빈 레이어 하나를 남깁니다."""
    if not layers:
        return []
    for i in range(len(layers) - 1, -1, -1):
        if not layers[i].is_empty():
            return layers[:i + 1]
    return [layers[0]]


def settle(shape: Shape) -> Shape:
    """물리를 적용하고 트림한 새 Shape 를 반환합니다."""
    layers = [layer.copy() for layer in shape.layers]
    return Shape(clean_up_empty_upper_layers(make_layers_fall(layers)))
