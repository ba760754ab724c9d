"""
Narrow interfaces to the services the ordering core depends on, with the
default implementations the HTTP app wires in.
"""
import hashlib
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Protocol

from pydantic import ValidationError as ModelValidationError

from pizzeria.config import Config
from pizzeria.exceptions import ValidationError
from pizzeria.models import OrderLine, OrderRecord
from pizzeria.redis_client import RedisClient, get_redis_client

logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]


class FreightService(Protocol):
    def freight_for(self, address: str) -> Decimal: ...


class OrderRepository(Protocol):
    def create(self, record: OrderRecord) -> str: ...
    def get(self, order_id: str) -> Optional[OrderRecord]: ...
    def update(self, record: OrderRecord) -> None: ...
    def list_by_phone(self, phone: str) -> List[OrderRecord]: ...


class Notifier(Protocol):
    def notify(self, record: OrderRecord) -> None: ...


class LoyaltyService(Protocol):
    def accrue(self, record: OrderRecord) -> None: ...


class FlatFreightService:
    """Same freight for every address"""

    def __init__(self, amount: Optional[Decimal] = None):
        self.amount = Config.FLAT_FREIGHT_AMOUNT if amount is None else amount

    def freight_for(self, address: str) -> Decimal:
        return self.amount


class RedisOrderRepository:
    """Orders stored as JSON documents with a per-phone index"""

    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis or get_redis_client()

    @staticmethod
    def _order_key(order_id: str) -> str:
        return f"order:{order_id}"

    @staticmethod
    def _phone_key(phone: str) -> str:
        return f"orders:phone:{phone}"

    @staticmethod
    def _checked(record: OrderRecord) -> OrderRecord:
        # model_copy() skips validation, so re-validate before writing
        try:
            return OrderRecord.model_validate(record.model_dump())
        except ModelValidationError as e:
            raise ValidationError(f"Malformed order record: {e}")

    def create(self, record: OrderRecord) -> str:
        order_id = str(uuid.uuid4())
        stored = self._checked(record).model_copy(update={"id": order_id})
        document = self.redis.encode_json(stored.model_dump(mode="json"))

        def queue(pipe):
            pipe.set(self._order_key(order_id), document)
            pipe.lpush(self._phone_key(stored.customer_phone), order_id)

        # Document and phone index land together or not at all
        self.redis.transaction(queue)
        return order_id

    def get(self, order_id: str) -> Optional[OrderRecord]:
        raw = self.redis.get_json(self._order_key(order_id))
        return OrderRecord.model_validate(raw) if raw else None

    def update(self, record: OrderRecord) -> None:
        if not record.id or not self.redis.exists(self._order_key(record.id)):
            raise ValidationError(f"Cannot update unknown order {record.id}")
        self.redis.set_json(self._order_key(record.id), self._checked(record).model_dump(mode="json"))

    def list_by_phone(self, phone: str) -> List[OrderRecord]:
        orders = []
        for order_id in self.redis.lrange(self._phone_key(phone)):
            record = self.get(order_id)
            if record is not None:
                orders.append(record)
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders


class LoggingNotifier:
    """Writes order events to the log"""

    def notify(self, record: OrderRecord) -> None:
        logger.info(
            f"Order {record.id} is {record.status.value}",
            extra={
                "order_id": record.id,
                "status": record.status.value,
                "total": str(record.total),
                "hashed_phone": hash_identifier(record.customer_phone),
            },
        )


class RedisLoyaltyTracker:
    """Counts eligible pizza units per customer; rewards are decided elsewhere"""

    def __init__(self, redis: Optional[RedisClient] = None, large_keywords: Optional[List[str]] = None):
        self.redis = redis or get_redis_client()
        self.large_keywords = [k.lower() for k in (large_keywords or Config.LARGE_SIZE_KEYWORDS)]

    def is_eligible(self, line: OrderLine) -> bool:
        text = " ".join(
            [line.name]
            + [group.group_name for group in line.selected_variations]
            + [v.name for group in line.selected_variations for v in group.variations]
        ).lower()
        is_pizza = line.is_pizza or line.is_half_pizza or "pizza" in text
        return is_pizza and any(keyword in text for keyword in self.large_keywords)

    def eligible_units(self, record: OrderRecord) -> int:
        return sum(line.quantity for line in record.items if self.is_eligible(line))

    def progress(self, phone: str) -> int:
        value = self.redis.get(f"loyalty:{phone}")
        return int(value) if value else 0

    def accrue(self, record: OrderRecord) -> None:
        units = self.eligible_units(record)
        if units:
            total = self.redis.incrby(f"loyalty:{record.customer_phone}", units)
            logger.info(f"Loyalty progress for {hash_identifier(record.customer_phone)}: {total}")
