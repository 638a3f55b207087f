"""模块说明：__init__。"""

from stickerbot.ratelimit.limiter import RateLimiter, reply_rate_limited, sender_key

__all__ = ["RateLimiter", "reply_rate_limited", "sender_key"]
