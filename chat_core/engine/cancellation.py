from chat_core.domain.exceptions import CancelledError


class CancellationToken:
    """单次发送的取消令牌。

    generation 为发送序号；新发送开始时旧令牌被作废，之后旧调用的任何
    结果都只能通过 raise_if_cancelled 转成 CancelledError。
    """

    __slots__ = ("_generation", "_cancelled")

    def __init__(self, generation: int):
        self._generation = generation
        self._cancelled = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancelledError(
                code="SUPERSEDED",
                message=f"send #{self._generation} was superseded",
                generation=self._generation,
            )

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "live"
        return f"CancellationToken(generation={self._generation}, {state})"
