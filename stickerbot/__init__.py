"""stickerbot：贴纸机器人的入站更新分发管线。"""

__version__ = "0.3.0"
