"""
文件功能：
    内存订单存储（演示用），线程安全。

公开接口：
    - InMemoryOrderStore
      - create(order) -> OrderRecord
      - update(order_id, **changes) -> OrderRecord | None
      - find_by_email(email) -> list[OrderRecord]   按创建时间倒序
      - find_by_id(order_id) -> OrderRecord | None
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from .schemas import OrderRecord


class InMemoryOrderStore:
    def __init__(self) -> None:
        self._orders: Dict[str, OrderRecord] = {}
        self._lock = threading.Lock()

    def create(self, order: OrderRecord) -> OrderRecord:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"订单已存在: {order.id}")
            self._orders[order.id] = order.model_copy(deep=True)
        return order

    def update(self, order_id: str, **changes: Any) -> Optional[OrderRecord]:
        """仅更新值不为 None 的字段。"""
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            values = {key: value for key, value in changes.items() if value is not None}
            updated = current.model_copy(update=values, deep=True)
            self._orders[order_id] = updated
            return updated.model_copy(deep=True)

    def find_by_email(self, email: str) -> List[OrderRecord]:
        with self._lock:
            matches = [o.model_copy(deep=True) for o in self._orders.values() if o.email == email]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    def find_by_id(self, order_id: str) -> Optional[OrderRecord]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None
