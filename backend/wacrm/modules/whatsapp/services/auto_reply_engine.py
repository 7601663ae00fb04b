"""
Auto-Reply Rule Engine
Decides and performs automatic replies to inbound WhatsApp events.

Triggers:
- Referred product: contact opened a chat from a catalog product -> form link
- Catalog order: one reply per distinct linked form (native flow or form link)
- Keyword rules: first matching active rule of the company

Every executed action is exactly ONE provider call and ONE outbound message
row. When the provider rejects the send the row is still written, with a
synthetic autoreply-<hex> ID and status "failed". Sends are never retried.

No commits here: the dispatcher wraps each trigger in its own transaction.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.catalog.repositories.product_repository import ProductRepository
from wacrm.modules.whatsapp.constants import (
    AutoReplyMatchType,
    AutoReplyResponseType,
    AutoReplyTrigger,
    MessageStatus,
    MessageType,
)
from wacrm.modules.whatsapp.repositories.auto_reply_rule_repository import AutoReplyRuleRepository
from wacrm.modules.whatsapp.repositories.whatsapp_message_repository import WhatsAppMessageRepository
from wacrm.modules.whatsapp.schemas.webhook_events import MessageEvent, OrderEvent
from wacrm.modules.whatsapp.services.graph_client import MetaGraphClient
from wacrm.shared.core.config import settings
from wacrm.shared.core.constants import AUTO_REPLY_ID_PREFIX, FLOW_TOKEN_PREFIX
from wacrm.shared.core.templates import render_reply

logger = logging.getLogger("auto_reply")


# ============================================
# HELPERS
# ============================================

def build_form_link(form_id: Any) -> str:
    """Public URL of an intake form."""
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/form/{form_id}"


def generate_flow_token(flow_id: str) -> str:
    """flow_<flow_id>_<hex>: the flow ID can be read back from a submission's token."""
    return f"{FLOW_TOKEN_PREFIX}{flow_id}_{uuid.uuid4().hex}"


def synthetic_message_id() -> str:
    return f"{AUTO_REPLY_ID_PREFIX}{uuid.uuid4().hex}"


def format_price(price: Any) -> str:
    if price is None:
        return "-"
    if isinstance(price, (int, float, Decimal)):
        return f"{Decimal(str(price)).quantize(Decimal('0.01')):,}"
    return str(price)


def rule_matches(rule: Dict[str, Any], text: Optional[str]) -> bool:
    """
    exact:    whole body equals the keyword (surrounding whitespace ignored)
    contains: keyword appears anywhere in the body
    Case-insensitive unless the rule says otherwise.
    """
    keyword = (rule.get("keyword") or "").strip()
    if not keyword or not text:
        return False

    if not rule.get("case_sensitive"):
        keyword = keyword.lower()
        text = text.lower()

    if rule.get("match_type") == AutoReplyMatchType.EXACT.value:
        return text.strip() == keyword
    return keyword in text


def find_matching_rule(rules: List[Dict[str, Any]], text: Optional[str]) -> Optional[Dict[str, Any]]:
    """First rule, in the given order, that matches."""
    return next((rule for rule in rules if rule_matches(rule, text)), None)


class AutoReplyEngine:
    """
    Rule-based auto replies for one inbound event.

    Each handler returns the outbound message rows it logged (empty if no
    action applied).
    """

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[Dict[str, Any]], MetaGraphClient] = MetaGraphClient.from_config
    ):
        self.db = db
        self.product_repo = ProductRepository(db)
        self.rule_repo = AutoReplyRuleRepository(db)
        self.message_repo = WhatsAppMessageRepository(db)
        self.client_factory = client_factory

    # ============================================
    # REFERRED PRODUCT
    # ============================================

    async def handle_referred_product(self, event: MessageEvent, config: Dict[str, Any]) -> List[dict]:
        """Contact asked about a catalog product: send the product's form link."""
        if not event.referred_product:
            return []

        retailer_id = event.referred_product.product_retailer_id
        product = await self.product_repo.get_by_retailer_id(config["company_id"], retailer_id)
        if not product:
            logger.info(f"No active product for referred retailer_id {retailer_id}")
            return []
        if not product.get("linked_form_id"):
            logger.info(f"Product {product['id']} has no linked form, no reply")
            return []

        body = render_reply(
            "referred_product",
            contact_name=event.from_name or "there",
            product_name=product["name"],
            form_link=build_form_link(product["linked_form_id"])
        )
        logged = await self._send_text(
            config, event.from_number, body,
            trigger=AutoReplyTrigger.REFERRED_PRODUCT,
            extra={"product_id": product["id"], "form_id": product["linked_form_id"]}
        )
        return [logged]

    # ============================================
    # CATALOG ORDER
    # ============================================

    async def handle_order(self, event: OrderEvent, config: Dict[str, Any]) -> List[dict]:
        """
        One reply per distinct linked form among the ordered products.
        The first ordered product of each form decides flow vs. form link.
        """
        products = await self.product_repo.get_by_retailer_ids(config["company_id"], event.retailer_ids)

        by_form: Dict[Any, dict] = {}
        for product in products:
            form_id = product.get("linked_form_id")
            if form_id and form_id not in by_form:
                by_form[form_id] = product

        if not by_form:
            logger.info(f"Order {event.message_id}: no ordered product links a form")
            return []

        logged = []
        for form_id, product in by_form.items():
            extra = {"product_id": product["id"], "form_id": form_id, "order_message_id": event.message_id}
            if product.get("flow_id"):
                logged.append(await self._send_flow(
                    config, event.from_number, product["flow_id"],
                    body_text=render_reply("order_flow", product_name=product["name"]),
                    trigger=AutoReplyTrigger.ORDER,
                    extra=extra
                ))
            else:
                body = render_reply(
                    "order_form",
                    product_name=product["name"],
                    form_link=build_form_link(form_id)
                )
                logged.append(await self._send_text(
                    config, event.from_number, body,
                    trigger=AutoReplyTrigger.ORDER,
                    extra=extra
                ))
        return logged

    # ============================================
    # KEYWORD RULES
    # ============================================

    async def handle_keyword_rules(self, event: MessageEvent, config: Dict[str, Any]) -> List[dict]:
        """Run the first matching keyword rule against a text body."""
        if event.message_type != MessageType.TEXT or not event.body:
            return []

        rules = await self.rule_repo.list_active(config["company_id"])
        rule = find_matching_rule(rules, event.body)
        if not rule:
            return []

        logger.info(f"🔑 Keyword rule {rule['id']} ('{rule['keyword']}') matched message {event.message_id}")

        # Dictionary Dispatch: response type -> action
        actions = {
            AutoReplyResponseType.TEXT.value: self._rule_text,
            AutoReplyResponseType.PRODUCT.value: self._rule_product,
            AutoReplyResponseType.ALL_PRODUCTS_PRICES.value: self._rule_all_products,
            AutoReplyResponseType.FLOW.value: self._rule_flow,
        }
        action = actions.get(rule.get("response_type"))
        if not action:
            logger.warning(f"⚠️ Rule {rule['id']} has unknown response type: {rule.get('response_type')}")
            return []

        logged = await action(rule, event, config)
        return [logged] if logged else []

    async def _rule_text(self, rule: dict, event: MessageEvent, config: dict) -> Optional[dict]:
        if not rule.get("response_text"):
            logger.warning(f"⚠️ Rule {rule['id']} has no response text")
            return None
        return await self._send_text(
            config, event.from_number, rule["response_text"],
            trigger=AutoReplyTrigger.KEYWORD, extra={"rule_id": rule["id"]}
        )

    async def _rule_product(self, rule: dict, event: MessageEvent, config: dict) -> Optional[dict]:
        product = None
        if rule.get("product_id"):
            product = await self.product_repo.get_by_id(config["company_id"], rule["product_id"])
        if not product:
            logger.warning(f"⚠️ Rule {rule['id']} points at a missing product {rule.get('product_id')}")
            return None

        body = render_reply(
            "product_card",
            product_name=product["name"],
            details=f"{product['description']}\n" if product.get("description") else "",
            currency=product.get("currency") or "",
            price=format_price(product.get("price"))
        )
        return await self._send_text(
            config, event.from_number, body,
            trigger=AutoReplyTrigger.KEYWORD, extra={"rule_id": rule["id"], "product_id": product["id"]}
        )

    async def _rule_all_products(self, rule: dict, event: MessageEvent, config: dict) -> Optional[dict]:
        products = await self.product_repo.list_active(config["company_id"])
        if products:
            lines = [render_reply("all_products_header")]
            lines.extend(
                render_reply(
                    "product_price_line",
                    product_name=p["name"],
                    currency=p.get("currency") or "",
                    price=format_price(p.get("price"))
                )
                for p in products
            )
            body = "\n".join(lines)
        else:
            body = render_reply("no_products")

        return await self._send_text(
            config, event.from_number, body,
            trigger=AutoReplyTrigger.KEYWORD, extra={"rule_id": rule["id"], "product_count": len(products)}
        )

    async def _rule_flow(self, rule: dict, event: MessageEvent, config: dict) -> Optional[dict]:
        if not rule.get("flow_id"):
            logger.warning(f"⚠️ Rule {rule['id']} has no flow_id")
            return None
        return await self._send_flow(
            config, event.from_number, rule["flow_id"],
            body_text=rule.get("response_text") or render_reply("flow_invitation"),
            trigger=AutoReplyTrigger.KEYWORD,
            extra={"rule_id": rule["id"]}
        )

    # ============================================
    # SEND + LOG
    # ============================================

    async def _send_text(
        self,
        config: Dict[str, Any],
        to: str,
        body: str,
        trigger: AutoReplyTrigger,
        extra: Optional[dict] = None
    ) -> dict:
        try:
            result = await self.client_factory(config).send_text(to, body)
        except Exception as e:
            result = {"success": False, "to": to, "error": str(e)}
        return await self._log_outgoing(config, to, body, MessageType.TEXT, result, trigger, extra)

    async def _send_flow(
        self,
        config: Dict[str, Any],
        to: str,
        flow_id: str,
        body_text: str,
        trigger: AutoReplyTrigger,
        extra: Optional[dict] = None
    ) -> dict:
        flow_token = generate_flow_token(flow_id)
        try:
            result = await self.client_factory(config).send_flow(
                to, flow_id=flow_id, flow_token=flow_token, body_text=body_text
            )
        except Exception as e:
            result = {"success": False, "to": to, "error": str(e)}
        extra = {**(extra or {}), "flow_id": flow_id, "flow_token": flow_token}
        return await self._log_outgoing(config, to, body_text, MessageType.INTERACTIVE, result, trigger, extra)

    async def _log_outgoing(
        self,
        config: Dict[str, Any],
        to: str,
        body: str,
        message_type: MessageType,
        result: Dict[str, Any],
        trigger: AutoReplyTrigger,
        extra: Optional[dict]
    ) -> dict:
        """Persist the outbound row whatever the provider answered."""
        sent = bool(result.get("success"))
        message_id = result.get("message_id") if sent else None

        metadata = {"auto_reply": True, "trigger": trigger.value, **(extra or {})}
        if sent:
            metadata["provider_response"] = result.get("response")
        else:
            metadata["error"] = result.get("error")
            logger.error(f"❌ Auto-reply ({trigger.value}) to {to} failed: {result.get('error')}")

        return await self.message_repo.create_outgoing(
            message_id=message_id or synthetic_message_id(),
            phone_number_id=config["phone_number_id"],
            company_id=config["company_id"],
            to_number=to,
            body=body,
            status=MessageStatus.SENT.value if sent else MessageStatus.FAILED.value,
            message_type=message_type.value,
            provider_metadata=metadata
        )
