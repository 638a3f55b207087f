"""统一的错误出口。"""

from loguru import logger

from stickerbot.dispatch.context import Context
from stickerbot.errors import StoreError


class ErrorSink:
    """记录所有被捕获的错误，并在需要时向用户发送一次通用提示。

    提示只包含本地化的 error.unknown 文本，不暴露内部细节；
    会话保存失败与应答发送失败只记录日志，不打扰用户。
    """

    def __init__(self):
        self.count = 0

    async def report(self, error: BaseException, ctx: Context | None = None, *, notify: bool = True) -> None:
        """异步函数说明：report。"""
        self.count += 1
        where = ctx.describe() if ctx is not None else "-"

        if isinstance(error, StoreError):
            logger.warning(f"Session not saved ({where}): {error}")
        else:
            logger.opt(exception=error).error(f"Error while processing {where}: {error!r}")

        if not notify or ctx is None or ctx.error_notified or ctx.chat_id is None:
            return

        ctx.error_notified = True
        try:
            await ctx.reply(ctx.t("error.unknown"))
        except Exception as e:
            logger.warning(f"Failed to send error notice ({where}): {e}")
