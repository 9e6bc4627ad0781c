"""
组件装配

数据库管理器、事件总线、网关在每个应用实例中只构建一次，再注入到各服务。
"""
from typing import Optional

from ff_core.config import Settings
from ff_core.database import DatabaseManager
from ff_core.event_bus import EventBus
from ff_core.gateways import (
    CarrierGateway, HttpCarrierGateway,
    RefundGateway, HttpRefundGateway,
    NotificationDispatcher, HttpNotificationDispatcher,
)
from ff_core.services import (
    CommissionCalculator,
    FulfillmentService,
    ShippingLabelGenerator,
    ReturnsService,
    ReturnsConsolidator,
    ReturnAddress,
)
from ff_core.utils.logger import get_logger

logger = get_logger(__name__)


class EngineContainer:
    """履约与退货引擎的组件容器"""

    def __init__(
        self,
        settings: Settings,
        db_manager: Optional[DatabaseManager] = None,
        event_bus: Optional[EventBus] = None,
        carrier_gateway: Optional[CarrierGateway] = None,
        refund_gateway: Optional[RefundGateway] = None,
        notification_dispatcher: Optional[NotificationDispatcher] = None
    ):
        self.settings = settings
        self.db_manager = db_manager or DatabaseManager(settings)

        if event_bus is None and settings.events_enabled:
            event_bus = EventBus(settings)
        self.event_bus = event_bus

        if carrier_gateway is None and settings.carrier_api_base_url:
            carrier_gateway = HttpCarrierGateway(
                base_url=settings.carrier_api_base_url,
                api_key=settings.carrier_api_key,
                timeout=settings.carrier_timeout_seconds
            )
        self.carrier_gateway = carrier_gateway

        if refund_gateway is None and settings.refund_api_base_url:
            refund_gateway = HttpRefundGateway(
                base_url=settings.refund_api_base_url,
                api_key=settings.refund_api_key,
                timeout=settings.refund_timeout_seconds
            )
        self.refund_gateway = refund_gateway

        if notification_dispatcher is None:
            notification_dispatcher = HttpNotificationDispatcher(
                base_url=settings.notification_api_base_url,
                api_key=settings.notification_api_key,
                sender_email=settings.notification_sender_email,
                sender_name=settings.notification_sender_name,
                timeout=settings.notification_timeout_seconds
            )
        self.notification_dispatcher = notification_dispatcher

        self.commission_calculator = CommissionCalculator()
        self.label_generator = ShippingLabelGenerator(
            carrier_gateway=self.carrier_gateway,
            gateway_timeout=settings.carrier_timeout_seconds,
            currency=settings.currency
        )
        self.fulfillment = FulfillmentService(
            self.db_manager,
            self.event_bus,
            commission_calculator=self.commission_calculator
        )
        self.returns = ReturnsService(
            self.db_manager,
            self.event_bus,
            refund_gateway=self.refund_gateway,
            refund_timeout=settings.refund_timeout_seconds,
            refund_claim_ttl=settings.refund_claim_ttl_seconds
        )
        self.consolidator = ReturnsConsolidator(
            self.db_manager,
            label_generator=self.label_generator,
            notification_dispatcher=self.notification_dispatcher,
            event_bus=self.event_bus,
            default_carrier=settings.default_return_carrier,
            default_item_weight_kg=settings.default_item_weight_kg,
            group_concurrency=settings.return_group_concurrency,
            notification_timeout=settings.notification_timeout_seconds,
            return_address=ReturnAddress(
                name=settings.return_address_name,
                address_line1=settings.return_address_line1,
                address_line2=settings.return_address_line2,
                city=settings.return_address_city,
                state=settings.return_address_state,
                postal_code=settings.return_address_postal_code,
                country=settings.return_address_country,
                phone=settings.return_address_phone
            )
        )

    async def startup(self) -> None:
        """启动：检查数据库，连接事件总线"""
        if not await self.db_manager.check_connection():
            logger.warning("Database not reachable at startup")

        if self.event_bus is not None:
            try:
                await self.event_bus.initialize()
            except Exception as e:
                # 事件总线不可用时服务仍可运行，发布会记录告警
                logger.warning(f"Event bus unavailable: {e}")

        logger.info(
            "Engine container started",
            carrier_gateway=type(self.carrier_gateway).__name__ if self.carrier_gateway else None,
            refund_gateway=type(self.refund_gateway).__name__ if self.refund_gateway else None,
            events_enabled=self.event_bus is not None
        )

    async def shutdown(self) -> None:
        """关闭所有外部连接"""
        for gateway in (self.carrier_gateway, self.refund_gateway, self.notification_dispatcher):
            if gateway is not None:
                await gateway.close()

        if self.event_bus is not None:
            await self.event_bus.shutdown()

        await self.db_manager.close()
        logger.info("Engine container stopped")
