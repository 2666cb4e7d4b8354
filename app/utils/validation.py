import math
import re
from typing import List, Optional, Tuple
from uuid import UUID

from app.core.config import MONEY_EPSILON, PERCENT_EPSILON
from app.core.exceptions import ValidationError
from app.models.enums import SplitMethod, TransactionType
from app.models.transaction import SETTLEMENT_TAG
from app.schemas.transaction import Payer

_SETTLEMENT_RE = re.compile(r"^SETTLEMENT:\s*(Paid|Received from)\s+(\S+@\S+)\s*$")


def settlement_description(direction: str, email: str) -> str:
    if direction == "paid":
        return f"{SETTLEMENT_TAG} Paid {email}"
    return f"{SETTLEMENT_TAG} Received from {email}"


def parse_settlement_tag(description: Optional[str]) -> Optional[Tuple[str, str]]:
    """Devuelve (direction, email) si la descripción lleva la etiqueta de liquidación."""
    if not description:
        return None
    match = _SETTLEMENT_RE.match(description.strip())
    if not match:
        return None
    direction = "paid" if match.group(1) == "Paid" else "received"
    return direction, match.group(2)


def _all_finite(payers: List[Payer], split) -> bool:
    values = [p.amount_paid for p in payers or []]
    if split is not None:
        for p in split.participants:
            values.append(p.share_amount)
            if p.share_percentage is not None:
                values.append(p.share_percentage)
    return all(math.isfinite(v) for v in values)


def _duplicates(ids: List[UUID]) -> List[UUID]:
    seen, repeated = set(), []
    for user_id in ids:
        if user_id in seen and user_id not in repeated:
            repeated.append(user_id)
        seen.add(user_id)
    return repeated


def collect_errors(
    tx_type: TransactionType,
    amount: float,
    payers: List[Payer],
    split,
    creator_id: UUID,
    description: str = "",
) -> List[str]:
    errors: List[str] = []

    if amount is not None and not math.isfinite(amount):
        errors.append("El monto debe ser un número finito.")
        amount = 0.0
    elif amount is None or amount <= 0:
        errors.append("El monto debe ser mayor a cero.")
        amount = amount or 0.0

    # NaN o infinito anulan las comparaciones de sumas
    if not _all_finite(payers, split):
        errors.append("Los montos de pagadores y cuotas deben ser números finitos.")
        return errors

    # Pagadores
    if not payers:
        errors.append("Debe existir al menos un pagador.")
    else:
        if any(p.amount_paid < 0 for p in payers):
            errors.append("Ningún pagador puede tener un monto negativo.")
        if _duplicates([p.user_id for p in payers]):
            errors.append("Un usuario aparece más de una vez como pagador.")
        paid = sum(p.amount_paid for p in payers)
        if abs(paid - amount) > MONEY_EPSILON:
            errors.append(f"La suma pagada ({paid:.2f}) no coincide con el monto ({amount:.2f}).")

    # Reparto
    if tx_type == TransactionType.shared:
        if split is None:
            errors.append("Una transacción compartida requiere detalles de reparto.")
        elif split.method == SplitMethod.settlement.value:
            errors.append("Una transacción compartida no puede ser una liquidación.")
        else:
            errors.extend(_split_errors(split, amount))
    elif split is not None:
        if split.method != SplitMethod.settlement.value:
            errors.append("Solo las transacciones compartidas pueden tener reparto.")
        else:
            errors.extend(_settlement_errors(split, amount, creator_id, description))

    return errors


def _split_errors(split, amount: float) -> List[str]:
    errors: List[str] = []
    participants = split.participants
    if not participants:
        return ["El reparto debe tener al menos un participante."]

    if any(p.share_amount < 0 for p in participants):
        errors.append("Ninguna cuota puede ser negativa.")
    if _duplicates([p.user_id for p in participants]):
        errors.append("Un usuario aparece más de una vez en el reparto.")

    shares = sum(p.share_amount for p in participants)
    if abs(shares - amount) > MONEY_EPSILON:
        errors.append(f"La suma de las cuotas ({shares:.2f}) no coincide con el monto ({amount:.2f}).")

    if split.method == SplitMethod.percentages.value:
        if any(p.share_percentage is None for p in participants):
            errors.append("Cada participante necesita un porcentaje.")
        else:
            total = sum(p.share_percentage for p in participants)
            if abs(total - 100) > PERCENT_EPSILON:
                errors.append(f"Los porcentajes suman {total:.2f} y deben sumar 100.")
    return errors


def _settlement_errors(split, amount: float, creator_id: UUID, description: str) -> List[str]:
    errors: List[str] = []
    if len(split.participants) != 1:
        return ["Una liquidación debe tener exactamente una contraparte."]

    counterparty = split.participants[0]
    if counterparty.user_id == creator_id:
        errors.append("No puedes liquidar una deuda contigo mismo.")
    if abs(counterparty.share_amount - amount) > MONEY_EPSILON:
        errors.append("La cuota de la contraparte debe ser igual al monto de la liquidación.")
    if not (description or "").startswith(SETTLEMENT_TAG):
        errors.append(f"La descripción de una liquidación debe comenzar con '{SETTLEMENT_TAG}'.")
    return errors


def validate_transaction(
    tx_type: TransactionType,
    amount: float,
    payers: List[Payer],
    split,
    creator_id: UUID,
    description: str = "",
) -> None:
    errors = collect_errors(tx_type, amount, payers, split, creator_id, description)
    if errors:
        raise ValidationError(errors)
