"""模块说明：__init__。"""

from stickerbot.scenes.engine import Scene, SceneEngine, Step, StepResult, advance, leave, stay

__all__ = ["Scene", "SceneEngine", "Step", "StepResult", "advance", "leave", "stay"]
