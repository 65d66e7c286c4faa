"""
Interpreter for the order action block appended to generated replies.

The reply generator ends a message with a block such as

    [AI_ORDER_ACTIONS]
    ADD_PRODUCT: 8057183568061, 45292206129341, 2
    UPDATE_INFO: name="Rami", phone="03 123 456"
    [/AI_ORDER_ACTIONS]

The block is stripped before the reply is shown to the customer and each
line is run through the order session service in order.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from moaawen.errors import OrderError
from moaawen.utils.ids import normalize_id
from moaawen.utils.response import failure

logger = logging.getLogger(__name__)

ACTION_BLOCK_RE = re.compile(r"\[AI_ORDER_ACTIONS\](.*?)\[/AI_ORDER_ACTIONS\]", re.S | re.I)
COMMAND_RE = re.compile(r"^\s*([A-Za-z_]+)\s*:\s*(.*)$")
INFO_PAIR_RE = re.compile(r'(\w+)\s*=\s*"([^"]*)"')
FIRST_INT_RE = re.compile(r"\d+")
PHONE_JUNK_RE = re.compile(r"[\s\-().]")

ADD_PRODUCT = "ADD_PRODUCT"
REMOVE_PRODUCT = "REMOVE_PRODUCT"
UPDATE_INFO = "UPDATE_INFO"
CONFIRM_ORDER = "CONFIRM_ORDER"
CANCEL_ORDER = "CANCEL_ORDER"
KNOWN_COMMANDS = (ADD_PRODUCT, REMOVE_PRODUCT, UPDATE_INFO, CONFIRM_ORDER, CANCEL_ORDER)

_INFO_KEYS = {
    "name": "name",
    "phone": "phone",
    "address": "address",
    "email": "email",
    "notes": "notes",
    "additional_notes": "notes",
}


@dataclass
class ActionCommand:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    raw: str = ""


def clean_phone(phone: Optional[str]) -> str:
    """
    Strip separators and normalize Lebanese numbers to +961.

    >>> clean_phone("00961 3 123 456")
    '+9613123456'
    >>> clean_phone("03-123456")
    '+9613123456'
    >>> clean_phone("3123456")
    '+9613123456'
    """
    if not phone:
        return ""
    cleaned = PHONE_JUNK_RE.sub("", str(phone))
    if cleaned.startswith("00961"):
        return "+961" + cleaned[5:]
    if cleaned.startswith("961"):
        return "+961" + cleaned[3:]
    if cleaned.startswith("0") and len(cleaned) == 8:
        return "+961" + cleaned[1:]
    if not cleaned.startswith("+") and len(cleaned) == 7:
        return "+961" + cleaned
    return cleaned


def parse_customer_info(text: str) -> Dict[str, str]:
    """`name="..", phone=".."` pairs into customer fields; unknown keys are ignored."""
    info = {}
    for key, value in INFO_PAIR_RE.findall(text or ""):
        target = _INFO_KEYS.get(key.lower())
        if not target or not value.strip():
            continue
        info[target] = clean_phone(value) if target == "phone" else value.strip()
    return info


def _to_quantity(raw: Optional[str]) -> int:
    match = FIRST_INT_RE.search(raw or "")
    number = int(match.group(0)) if match else 1
    return number if number > 0 else 1


def _parse_line(line: str) -> Optional[ActionCommand]:
    match = COMMAND_RE.match(line)
    if not match or match.group(1).upper() not in KNOWN_COMMANDS:
        logger.warning("Skipping unknown order action", extra={"line": line})
        return None
    name, body = match.group(1).upper(), match.group(2).strip()

    if name == ADD_PRODUCT:
        parts = [p.strip() for p in body.split(",") if p.strip()]
        return ActionCommand(name, {
            "product_id": normalize_id(parts[0]) if parts else "",
            "variant_id": normalize_id(parts[1]) if len(parts) > 1 else "",
            "quantity": _to_quantity(parts[2] if len(parts) > 2 else None),
        }, line)

    if name == REMOVE_PRODUCT:
        parts = [p.strip() for p in body.split(",") if p.strip()]
        return ActionCommand(name, {
            "product_id": normalize_id(parts[0]) if parts else "",
            "variant_id": normalize_id(parts[1]) if len(parts) > 1 else "",
        }, line)

    if name == UPDATE_INFO:
        return ActionCommand(name, {"customer_data": parse_customer_info(body)}, line)

    # CONFIRM_ORDER / CANCEL_ORDER only fire on an explicit true
    if body.strip().strip('"').lower() != "true":
        logger.warning("Ignoring order action without a true flag", extra={"line": line})
        return None
    return ActionCommand(name, {}, line)


def parse_actions(text: Optional[str]) -> List[ActionCommand]:
    """Commands from every action block in `text`, in order of appearance."""
    commands = []
    for block in ACTION_BLOCK_RE.findall(text or ""):
        for line in block.splitlines():
            line = line.strip()
            if not line:
                continue
            command = _parse_line(line)
            if command is not None:
                commands.append(command)
    return commands


def strip_action_block(text: Optional[str]) -> str:
    """The reply as the customer should see it."""
    return ACTION_BLOCK_RE.sub("", text or "").strip()


class OrderActionInterpreter:
    def __init__(self, service=None):
        if service is None:
            from .service import OrderSessionService
            service = OrderSessionService()
        self.service = service

    def run(self, customer_id: Any, business_id: Any, channel: Any,
            command: ActionCommand) -> Dict[str, Any]:
        args = command.args
        if command.name == ADD_PRODUCT:
            if args["product_id"] and args["product_id"] == args["variant_id"]:
                logger.warning("Order action uses the product id as variant id",
                               extra={"product_id": args["product_id"]})
            return self.service.add_item(customer_id, business_id, channel,
                                         args["product_id"], args["variant_id"], args["quantity"])
        if command.name == REMOVE_PRODUCT:
            return self.service.remove_item(customer_id, business_id, channel,
                                            args["product_id"], args["variant_id"])
        if command.name == UPDATE_INFO:
            if not args["customer_data"]:
                return failure(OrderError.INVALID_ARGUMENT)
            return self.service.update_customer_info(customer_id, business_id, channel, args["customer_data"])
        if command.name == CONFIRM_ORDER:
            return self.service.confirm_order(customer_id, business_id, channel)
        return self.service.cancel_order(customer_id, business_id, channel)

    def execute(self, customer_id: Any, business_id: Any, channel: Any, text: str) -> List[Dict[str, Any]]:
        """Run every command in the reply's action block; one envelope per command."""
        results = []
        for command in parse_actions(text):
            result = self.run(customer_id, business_id, channel, command)
            if not result.get("success"):
                logger.info("Order action rejected",
                            extra={"action": command.name, "error_code": result.get("error")})
            results.append(result)
        return results
