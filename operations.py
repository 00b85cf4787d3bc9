"""
도형 연산 모듈 - 커터, 회전기, 스와퍼, 스태커, 페인터, 핀 푸셔, 크리스탈 생성기

모든 연산은 입력 Shape 를 건드리지 않고 새 Shape 리스트를 반환합니다.
"""

from __future__ import annotations
import math
from enum import Enum
from typing import List, Optional, Sequence

from i18n import t
from shape import Shape, Layer, ShapePart, CRYSTAL_CHAR, PIN_CHAR, UNPAINTABLE_SHAPES, PAINT_COLORS
from physics import (
    crystals_fused, break_crystals, make_layers_fall, clean_up_empty_upper_layers,
)


class InvalidOperationInputs(Exception):
    """층당 조각 수가 다른 도형을 함께 넣는 등, 연산에 넣을 수 없는 입력 조합"""
    pass


class ShapeOperationConfig:
    """모든 연산이 참조하는 설정값. 생성 후에는 바꿀 수 없습니다."""
    DEFAULT_MAX_SHAPE_LAYERS = 4
    __slots__ = ('max_shape_layers',)

    def __init__(self, max_shape_layers: int = DEFAULT_MAX_SHAPE_LAYERS):
        if not isinstance(max_shape_layers, int) or isinstance(max_shape_layers, bool) or max_shape_layers < 1:
            raise ValueError(t("error.config.max_layers", value=max_shape_layers))
        object.__setattr__(self, 'max_shape_layers', max_shape_layers)

    def __setattr__(self, name, value):
        raise AttributeError(t("error.config.frozen", name=name))

    def __eq__(self, other) -> bool:
        return isinstance(other, ShapeOperationConfig) and self.max_shape_layers == other.max_shape_layers

    def __hash__(self) -> int: return hash(self.max_shape_layers)

    def __repr__(self) -> str: return f"ShapeOperationConfig(max_shape_layers={self.max_shape_layers})"


DEFAULT_CONFIG = ShapeOperationConfig()


def _check_same_num_parts(op_name: str, *shapes: Shape):
    expected = shapes[0].num_parts
    for shape in shapes[1:]:
        if shape.num_parts != expected:
            raise InvalidOperationInputs(t("error.operation.num_parts", operation=op_name))


def _copy_layers(shape: Shape) -> List[Layer]:
    return [layer.copy() for layer in shape.layers]


def _finish(layers: List[Layer]) -> Shape:
    return Shape(clean_up_empty_upper_layers(make_layers_fall(layers)))


# ==============================================================================
#  연산
# ==============================================================================
def cut(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """도형을 두 절반으로 자릅니다.

    첫 번째 결과는 뒤쪽 ceil(n/2) 칸을, 두 번째 결과는 앞쪽 나머지 칸을 가집니다.
    자르는 경계에 걸친 크리스탈은 자르기 전에 깨집니다.
    """
    n = shape.num_parts
    take = math.ceil(n / 2)
    cut_points = [(0, n - 1), (n - take, n - take - 1)]
    layers = _copy_layers(shape)

    for layer_index, layer in enumerate(layers):
        for start, end in cut_points:
            if crystals_fused(layer.parts[start], layer.parts[end]):
                break_crystals(layers, layer_index, start)

    east_layers, west_layers = [], []
    for layer in layers:
        east_layers.append(Layer([None] * (n - take) + [p.copy() if p else None for p in layer.parts[n - take:]]))
        west_layers.append(Layer([p.copy() if p else None for p in layer.parts[:n - take]] + [None] * take))

    return [_finish(east_layers), _finish(west_layers)]


def half_cut(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """절반 파괴기: 커터의 두 번째(서쪽) 결과만 남깁니다."""
    return [cut(shape, config)[1]]


def rotate_cw(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    s = shape.copy()
    for layer in s.layers:
        p = layer.parts
        layer.parts = [p[-1]] + p[:-1]
    return [s]


def rotate_ccw(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    s = shape.copy()
    for layer in s.layers:
        p = layer.parts
        layer.parts = p[1:] + [p[0]]
    return [s]


def rotate_180(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    take = math.ceil(shape.num_parts / 2)
    s = shape.copy()
    for layer in s.layers:
        p = layer.parts
        layer.parts = p[take:] + p[:take]
    return [s]


def swap_halves(shape_a: Shape, shape_b: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """두 도형을 자른 뒤 서쪽 절반은 그대로 두고 동쪽 절반을 맞바꿉니다. 재정착은 하지 않습니다."""
    _check_same_num_parts("swapper", shape_a, shape_b)
    n = shape_a.num_parts
    take = math.ceil(n / 2)
    num_layers = max(shape_a.num_layers, shape_b.num_layers)
    a_east, a_west = cut(shape_a, config)
    b_east, b_west = cut(shape_b, config)
    for half in (a_east, a_west, b_east, b_west):
        half.pad_layers(num_layers)

    layers_a, layers_b = [], []
    for i in range(num_layers):
        layers_a.append(Layer(a_west.layers[i].parts[:n - take] + b_east.layers[i].parts[n - take:]))
        layers_b.append(Layer(b_west.layers[i].parts[:n - take] + a_east.layers[i].parts[n - take:]))

    return [Shape(clean_up_empty_upper_layers(layers_a)), Shape(clean_up_empty_upper_layers(layers_b))]


def stack(bottom: Shape, top: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """bottom 위에 빈 레이어 하나를 두고 top 을 올린 뒤 떨어뜨립니다. 최대 층 수를 넘는 위층은 버립니다."""
    _check_same_num_parts("stacker", bottom, top)
    layers = _copy_layers(bottom) + [Layer.empty(bottom.num_parts)] + _copy_layers(top)
    settled = clean_up_empty_upper_layers(make_layers_fall(layers))
    return [Shape(clean_up_empty_upper_layers(settled[:config.max_shape_layers]))]


def top_paint(shape: Shape, color: str, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    if color not in PAINT_COLORS: raise ValueError(t("error.color.invalid", color=color))
    s = shape.copy()
    top_layer = s.layers[-1]
    for i, part in enumerate(top_layer.parts):
        if part is not None and part.shape not in UNPAINTABLE_SHAPES:
            top_layer.parts[i] = ShapePart(part.shape, color)
    return [s]


def push_pin(shape: Shape, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """맨 아래에 핀 레이어를 끼워 넣습니다.

    최대 층 수에 닿으면 맨 위 레이어가 밀려나고, 밀려난 레이어와 융합돼 있던
    크리스탈은 함께 깨집니다.
    """
    layers = _copy_layers(shape)
    max_layers = config.max_shape_layers
    added_pins = Layer([ShapePart(PIN_CHAR, '-') if part is not None else None for part in layers[0].parts])

    if len(layers) < max_layers:
        new_layers = [added_pins] + layers
    else:
        new_layers = [added_pins] + layers[:max_layers - 1]
        removed_layer = layers[max_layers - 1]
        top_index = len(new_layers) - 1
        for q in range(shape.num_parts):
            if crystals_fused(new_layers[top_index].parts[q], removed_layer.parts[q]):
                break_crystals(new_layers, top_index, q)

    return [_finish(new_layers)]


def gen_crystal(shape: Shape, color: str, config: ShapeOperationConfig = DEFAULT_CONFIG) -> List[Shape]:
    """빈 칸과 핀을 지정 색의 크리스탈로 채웁니다. 기존 조각은 색을 바꾸지 않습니다."""
    if color not in PAINT_COLORS: raise ValueError(t("error.color.invalid", color=color))
    s = shape.copy()
    for layer in s.layers:
        for i, part in enumerate(layer.parts):
            if part is None or part.shape == PIN_CHAR:
                layer.parts[i] = ShapePart(CRYSTAL_CHAR, color)
    return [s]


# ==============================================================================
#  연산 종류 (닫힌 열거형)
# ==============================================================================
class Operation(Enum):
    """건물 종류. 값은 외부에서 쓰는 연산 이름입니다."""
    CUTTER = "cutter"
    HALF_DESTROYER = "halfDestroyer"
    ROTATE_CW = "rotateCW"
    ROTATE_CCW = "rotateCCW"
    ROTATE_180 = "rotate180"
    SWAPPER = "swapper"
    STACKER = "stacker"
    PAINTER = "painter"
    PIN_PUSHER = "pinPusher"
    CRYSTAL_GENERATOR = "crystalGenerator"

    @property
    def inputs(self) -> int:
        return 2 if self in (Operation.SWAPPER, Operation.STACKER) else 1

    @property
    def needs_color(self) -> bool:
        return self in (Operation.PAINTER, Operation.CRYSTAL_GENERATOR)

    @property
    def token(self) -> str:
        return _TOKENS[self]

    @classmethod
    def from_name(cls, name: str) -> Operation:
        key = name.strip().lower()
        for op in cls:
            if key in (op.value.lower(), op.name.lower(), op.token):
                return op
        raise ValueError(t("error.operation.unknown", name=name))

    @classmethod
    def from_token(cls, token: str) -> Operation:
        for op in cls:
            if op.token == token:
                return op
        raise ValueError(t("error.operation.unknown", name=token))


_TOKENS = {
    Operation.CUTTER: "cut",
    Operation.HALF_DESTROYER: "hcut",
    Operation.ROTATE_CW: "r90cw",
    Operation.ROTATE_CCW: "r90ccw",
    Operation.ROTATE_180: "r180",
    Operation.SWAPPER: "swap",
    Operation.STACKER: "stack",
    Operation.PAINTER: "paint",
    Operation.PIN_PUSHER: "pin",
    Operation.CRYSTAL_GENERATOR: "crystal",
}


def apply_operation(op: Operation, shapes: Sequence[Shape], config: ShapeOperationConfig = DEFAULT_CONFIG,
                    color: Optional[str] = None) -> List[Shape]:
    """연산 하나를 적용합니다. 입력 개수나 색 인자가 맞지 않으면 ValueError."""
    if len(shapes) != op.inputs:
        raise ValueError(t("error.operation.arity", operation=op.value, expected=op.inputs, got=len(shapes)))
    if op.needs_color and color is None:
        raise ValueError(t("error.operation.color_required", operation=op.value))
    if not op.needs_color and color is not None:
        raise ValueError(t("error.operation.color_unexpected", operation=op.value))

    if op is Operation.CUTTER:
        return cut(shapes[0], config)
    elif op is Operation.HALF_DESTROYER:
        return half_cut(shapes[0], config)
    elif op is Operation.ROTATE_CW:
        return rotate_cw(shapes[0], config)
    elif op is Operation.ROTATE_CCW:
        return rotate_ccw(shapes[0], config)
    elif op is Operation.ROTATE_180:
        return rotate_180(shapes[0], config)
    elif op is Operation.SWAPPER:
        return swap_halves(shapes[0], shapes[1], config)
    elif op is Operation.STACKER:
        return stack(shapes[0], shapes[1], config)
    elif op is Operation.PAINTER:
        return top_paint(shapes[0], color, config)
    elif op is Operation.PIN_PUSHER:
        return push_pin(shapes[0], config)
    elif op is Operation.CRYSTAL_GENERATOR:
        return gen_crystal(shapes[0], color, config)
    raise ValueError(t("error.operation.unknown", name=op))


def apply_operation_codes(op: Operation, codes: Sequence[str], config: ShapeOperationConfig = DEFAULT_CONFIG,
                          color: Optional[str] = None) -> List[str]:
    """코드 문자열 단위로 연산을 적용합니다."""
    shapes = [Shape.from_string(code) for code in codes]
    return [repr(s) for s in apply_operation(op, shapes, config, color)]
