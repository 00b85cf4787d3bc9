from __future__ import annotations
from typing import List, Optional

from i18n import t

# ==============================================================================
#  1. 도형 모델 (Shape Model)
# ==============================================================================
NOTHING_CHAR = "-"
SHAPE_LAYER_SEPARATOR = ":"
PIN_CHAR = "P"
CRYSTAL_CHAR = "c"
SOLID_SHAPES = ['C', 'R', 'S', 'W', 'H', 'F', 'G']  # 원, 사각, 별, 다이아, 육각, 꽃, 톱니
UNPAINTABLE_SHAPES = [CRYSTAL_CHAR, PIN_CHAR, NOTHING_CHAR]
REPLACED_BY_CRYSTAL = [PIN_CHAR, NOTHING_CHAR]
VALID_SHAPES = [PIN_CHAR, CRYSTAL_CHAR] + SOLID_SHAPES
VALID_COLORS = [NOTHING_CHAR, 'u', 'r', 'g', 'b', 'y', 'c', 'm', 'w']
PAINT_COLORS = [c for c in VALID_COLORS if c != NOTHING_CHAR]  # 페인터/크리스탈 생성기에 쓸 수 있는 색


class ShapePart:
    """한 칸(사분면/육분면)을 차지하는 조각. 빈 칸은 레이어에서 None 으로 표현합니다."""
    __slots__ = ('shape', 'color')

    def __init__(self, shape: str, color: str):
        if shape not in VALID_SHAPES: raise ValueError(t("error.shape.invalid", shape=shape))
        if color not in VALID_COLORS: raise ValueError(t("error.color.invalid", color=color))
        if shape == PIN_CHAR and color != NOTHING_CHAR: raise ValueError(t("error.pin.color"))
        self.shape = shape; self.color = color
    def __repr__(self) -> str: return f"{self.shape}{self.color}"
    def __eq__(self, other) -> bool:
        return isinstance(other, ShapePart) and self.shape == other.shape and self.color == other.color
    def __hash__(self) -> int: return hash((self.shape, self.color))
    def copy(self): return ShapePart(self.shape, self.color)


class Layer:
    def __init__(self, parts: List[Optional[ShapePart]]):
        if not parts: raise ValueError(t("error.layer.empty"))
        self.parts = parts
    def __repr__(self) -> str:
        return "".join(repr(p) if p else NOTHING_CHAR * 2 for p in self.parts)
    def __eq__(self, other) -> bool:
        return isinstance(other, Layer) and self.parts == other.parts
    def __len__(self) -> int: return len(self.parts)
    def is_empty(self) -> bool: return all(p is None for p in self.parts)
    def copy(self): return Layer([p.copy() if p else None for p in self.parts])

    @classmethod
    def empty(cls, num_parts: int) -> Layer:
        return cls([None] * num_parts)


class Shape:
    """아래층부터 위층 순서의 레이어 묶음.

    모든 연산은 사본을 만들어 작업하므로 호출자 입장에서 Shape 는 불변 값처럼 취급합니다.
    """

    def __init__(self, layers: List[Layer]):
        if not layers: raise ValueError(t("error.shape.no_layers"))
        num_parts = len(layers[0])
        if any(len(layer) != num_parts for layer in layers):
            raise ValueError(t("error.shape.part_count_mismatch"))
        self.layers = layers

    @property
    def num_layers(self) -> int: return len(self.layers)

    @property
    def num_parts(self) -> int: return len(self.layers[0])

    @classmethod
    def from_string(cls, code: str) -> Shape:
        """도형 코드를 해석합니다. 잘못된 코드는 즉시 ValueError 를 냅니다 (트림하지 않음)."""
        if not isinstance(code, str) or not code.strip():
            raise ValueError(t("error.code.empty"))

        layer_codes = code.strip().split(SHAPE_LAYER_SEPARATOR)
        expected_parts = None
        layers = []
        for layer_index, l_code in enumerate(layer_codes, 1):
            if not l_code:
                raise ValueError(t("error.code.layer_empty", layer=layer_index))
            if len(l_code) % 2 != 0:
                raise ValueError(t("error.code.layer_odd", layer=layer_index))
            parts = []
            for i in range(0, len(l_code), 2):
                s, c = l_code[i], l_code[i + 1]
                if s == NOTHING_CHAR:
                    if c != NOTHING_CHAR: raise ValueError(t("error.nothing.color", layer=layer_index))
                    parts.append(None)
                else:
                    parts.append(ShapePart(s, c))
            if expected_parts is None:
                expected_parts = len(parts)
            elif len(parts) != expected_parts:
                raise ValueError(t("error.code.layer_parts", layer=layer_index,
                                   parts=len(parts), expected=expected_parts))
            layers.append(Layer(parts))
        return cls(layers)

    @classmethod
    def empty(cls, num_parts: int, num_layers: int = 1) -> Shape:
        return cls([Layer.empty(num_parts) for _ in range(num_layers)])

    def copy(self): return Shape([layer.copy() for layer in self.layers])

    def pad_layers(self, num_layers: int):
        """지정된 수의 레이어가 있도록 도형을 확장합니다."""
        while len(self.layers) < num_layers:
            self.layers.append(Layer.empty(self.num_parts))

    def __repr__(self) -> str:
        return SHAPE_LAYER_SEPARATOR.join(repr(layer) for layer in self.layers)

    def to_code(self) -> str: return repr(self)

    def __eq__(self, other) -> bool:
        return isinstance(other, Shape) and self.layers == other.layers

    def __hash__(self) -> int: return hash(repr(self))

    def is_empty(self) -> bool: return all(layer.is_empty() for layer in self.layers)

    def rotations(self) -> List[str]:
        """시계방향 회전을 반복해 얻는 서로 다른 코드들 (원본 포함, 등장 순서 유지)."""
        from operations import rotate_cw
        codes = [repr(self)]
        current = self
        for _ in range(self.num_parts - 1):
            current = rotate_cw(current)[0]
            code = repr(current)
            if code not in codes:
                codes.append(code)
        return codes

    def apply_physics(self) -> Shape:
        from physics import settle
        return settle(self)

    def is_stable(self) -> bool:
        return repr(self.apply_physics()) == repr(self)


def is_empty_code(code: str) -> bool:
    """'--------' 처럼 모든 칸이 비어있는 코드인지 확인합니다."""
    return all(ch in (NOTHING_CHAR, SHAPE_LAYER_SEPARATOR) for ch in code)
