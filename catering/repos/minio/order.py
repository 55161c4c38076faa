"""
Minio implementation of OrderRepository.
"""

import io
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from minio import Minio
from minio.error import S3Error

from catering.domain import Order
from catering.repositories import OrderRepository
from catering.validation import validate_domain_model

logger = logging.getLogger(__name__)


class MinioOrderRepository(OrderRepository):
    """
    Minio implementation of OrderRepository.
    Each order is one JSON object named after its order id.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str = "minioadmin",
        secret_key: str = "minioadmin",
        bucket_name: str = "orders",
        secure: bool = False,
    ):
        logger.debug(
            "Initializing MinioOrderRepository",
            extra={"minio_endpoint": endpoint, "bucket_name": bucket_name},
        )
        self.client = Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self.bucket_name = bucket_name
        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self) -> None:
        try:
            if not self.client.bucket_exists(self.bucket_name):
                logger.info(
                    "Creating orders bucket",
                    extra={"bucket_name": self.bucket_name},
                )
                self.client.make_bucket(self.bucket_name)
        except S3Error as e:
            logger.error(
                "Failed to create orders bucket",
                extra={"bucket_name": self.bucket_name, "error": str(e)},
            )
            raise

    def _read_object(self, object_name: str) -> bytes:
        response = self.client.get_object(
            bucket_name=self.bucket_name, object_name=object_name
        )
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def generate_order_id(self) -> str:
        order_id = str(uuid.uuid4())
        logger.info(
            "MinioOrderRepository: Generated order ID",
            extra={"order_id": order_id},
        )
        return order_id

    def _stored_document(self, object_name: str) -> Optional[bytes]:
        try:
            return self._read_object(object_name)
        except S3Error as e:
            if getattr(e, "code", None) == "NoSuchKey":
                return None
            raise

    async def save_order(self, order: Order) -> bool:
        """
        Persist the order document when the stored version is the one the
        caller read.

        The stored version is read back right before the write; a writer in
        another process can only slip in between those two requests, not
        across a whole use case.
        """
        object_name = order.order_id
        written = order.model_copy(update={"version": order.version + 1})
        order_json = written.model_dump_json().encode("utf-8")

        try:
            stored = self._stored_document(object_name)
            if stored == order_json:
                logger.debug(
                    "MinioOrderRepository: Order state already matches, "
                    "skipping save (idempotent)",
                    extra={"order_id": order.order_id},
                )
                return True
            stored_version = (
                json.loads(stored.decode("utf-8")).get("version", 0)
                if stored is not None
                else 0
            )
            if stored_version != order.version:
                logger.info(
                    "MinioOrderRepository: Stale order version, not saved",
                    extra={
                        "order_id": order.order_id,
                        "expected_version": order.version,
                        "stored_version": stored_version,
                    },
                )
                return False

            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                data=io.BytesIO(order_json),
                length=len(order_json),
                content_type="application/json",
                metadata={
                    "buyer_id": order.buyer_id,
                    "store_id": order.store_id,
                    "order_status": order.order_status.value,
                    "version": str(written.version),
                    "saved_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            logger.info(
                "MinioOrderRepository: Order state persisted",
                extra={
                    "order_id": order.order_id,
                    "order_status": order.order_status.value,
                    "payment_status": order.payment_status.value,
                    "version": written.version,
                    "payload_size_bytes": len(order_json),
                },
            )
            return True
        except S3Error as e:
            logger.error(
                "MinioOrderRepository: Failed to persist order state",
                extra={
                    "order_id": order.order_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

    async def get_order(self, order_id: str) -> Optional[Order]:
        try:
            data = self._read_object(order_id)
        except S3Error as e:
            if getattr(e, "code", None) == "NoSuchKey":
                logger.debug(
                    "MinioOrderRepository: Order not found (NoSuchKey)",
                    extra={"order_id": order_id},
                )
                return None
            logger.error(
                "MinioOrderRepository: Error retrieving order object",
                extra={
                    "order_id": order_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise
        return validate_domain_model(json.loads(data.decode("utf-8")), Order)

    async def list_orders(self) -> List[Order]:
        orders = []
        for obj in self.client.list_objects(self.bucket_name, recursive=True):
            if obj.object_name is None:
                continue
            order = await self.get_order(obj.object_name)
            if order is not None:
                orders.append(order)
        logger.debug(
            "MinioOrderRepository: Listed orders",
            extra={"order_count": len(orders), "bucket_name": self.bucket_name},
        )
        return orders
