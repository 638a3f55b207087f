"""异常体系。

HandlerError 由功能处理器抛出，StoreError 来自会话持久化，
SceneError 描述场景状态机的非法状态。限流拒绝不是异常。
"""


class StickerBotError(Exception):
    """所有 stickerbot 异常的基类。"""

    pass


class HandlerError(StickerBotError):
    """功能处理器执行失败。"""

    pass


class StoreError(StickerBotError):
    """会话保存或读取失败。"""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Session store failure for {key}: {reason}")


class SceneError(StickerBotError):
    """场景相关错误的基类。"""

    pass


class SceneNotFoundError(SceneError):
    """请求的场景未注册。"""

    def __init__(self, scene_id: str):
        self.scene_id = scene_id
        super().__init__(f"Scene not found: {scene_id}")


class SceneStateError(SceneError):
    """场景状态无效（未知步骤或步骤返回值非法）。"""

    pass
