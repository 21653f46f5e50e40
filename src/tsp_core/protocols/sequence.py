# src/tsp_core/protocols/sequence.py
from ..exceptions import SequenceOverflowError
from .constants import FrameConst


class SequenceGenerator:
    """会话私有的帧序列号计数器。

    从 0 开始，每次 next() 先自增再返回，因此第一个值为 1。
    超过 28 bit 上限时不回绕，直接抛出 SequenceOverflowError 终止会话。
    """

    def __init__(self, start: int = 0) -> None:
        self._value = start

    @property
    def current(self) -> int:
        return self._value

    def next(self) -> int:
        if self._value >= FrameConst.SEQUENCE_MAX:
            raise SequenceOverflowError(f"序列号已耗尽 (上限 {FrameConst.SEQUENCE_MAX})")
        self._value += 1
        return self._value
