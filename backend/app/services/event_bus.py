"""
事件总线 - 进程内发布/订阅
服务在事务提交后发布领域事件，订阅方（通知、统计等协作方）与核心解耦
"""
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading

from app.models.events import BaseEventData, EventType

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]


@dataclass
class Event:
    """领域事件"""
    event_type: str
    data: Dict
    source: str  # 触发来源（服务名）
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d%H%M%S%f"))

    @classmethod
    def of(cls, event_type: EventType, payload: BaseEventData, source: str) -> "Event":
        """由事件数据对象构造事件"""
        return cls(event_type=event_type.value, data=payload.to_dict(), source=source)


class EventBus:
    """
    线程安全的事件总线

    使用方式：
    1. 订阅事件：bus.subscribe(EventType.RESERVATION_CREATED, handler)
    2. 发布事件：bus.publish(Event.of(...))
    3. 取消订阅：bus.unsubscribe(EventType.RESERVATION_CREATED, handler)
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._event_history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    @staticmethod
    def _key(event_type) -> str:
        return event_type.value if isinstance(event_type, EventType) else str(event_type)

    def subscribe(self, event_type, handler: EventHandler) -> None:
        """订阅事件，重复订阅同一处理器无效果"""
        key = self._key(event_type)
        with self._lock:
            handlers = self._subscribers.setdefault(key, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {handler.__name__} subscribed to {key}")

    def unsubscribe(self, event_type, handler: EventHandler) -> None:
        """取消订阅"""
        key = self._key(event_type)
        with self._lock:
            handlers = self._subscribers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """
        同步执行所有处理器

        处理器异常只记录日志，不影响其他处理器，也不回传给发布方
        （业务事务此时已经提交）
        """
        with self._lock:
            self._event_history.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {handler.__name__} error for {event.event_type}: {e}",
                    exc_info=True
                )

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取最近的事件（最新的在前）"""
        with self._lock:
            history = list(self._event_history)
        if event_type:
            key = self._key(event_type)
            history = [e for e in history if e.event_type == key]
        return list(reversed(history))[:limit]

    def clear(self) -> None:
        """清空订阅和历史（用于测试）"""
        with self._lock:
            self._subscribers.clear()
            self._event_history.clear()


# 应用级事件总线：服务未注入 event_publisher 时发布到这里
event_bus = EventBus()
