"""
Cálculo de aristas de deuda por transacción.

Cada transacción se compensa de forma independiente: se obtiene el saldo neto
de cada usuario (lo que pagó menos lo que le corresponde) y se emparejan
deudores con acreedores de forma voraz y determinista. No se simplifican
cadenas entre transacciones distintas.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from app.core.config import MONEY_EPSILON
from app.models.enums import SplitMethod, TransactionType
from app.models.transaction import Transaction
from app.schemas.transaction import Payer, SplitParticipant, parse_payers, parse_split_details


@dataclass(frozen=True)
class DebtEdge:
    debtor_id: UUID
    creditor_id: UUID
    amount: float


def _money(value: float) -> float:
    return round(value, 2)


def net_positions(payers: Iterable[Payer], participants: Iterable[SplitParticipant]) -> Dict[UUID, float]:
    """Saldo neto por usuario: pagado - cuota. Positivo = le deben."""
    net: Dict[UUID, float] = {}
    for payer in payers:
        net[payer.user_id] = net.get(payer.user_id, 0.0) + payer.amount_paid
    for participant in participants:
        net[participant.user_id] = net.get(participant.user_id, 0.0) - participant.share_amount
    return {user_id: _money(amount) for user_id, amount in net.items()}


def _ordered(entries: List[Tuple[UUID, float]]) -> List[Tuple[UUID, float]]:
    # Mayor monto primero, empate por id ascendente
    return sorted(entries, key=lambda e: (-e[1], str(e[0])))


def match_debts(net: Dict[UUID, float]) -> List[DebtEdge]:
    debtors = _ordered([(u, -amount) for u, amount in net.items() if amount < -MONEY_EPSILON])
    creditors = _ordered([(u, amount) for u, amount in net.items() if amount > MONEY_EPSILON])

    edges: List[DebtEdge] = []
    d_idx, c_idx = 0, 0
    debtor_left = debtors[0][1] if debtors else 0.0
    creditor_left = creditors[0][1] if creditors else 0.0

    while d_idx < len(debtors) and c_idx < len(creditors):
        amount = _money(min(debtor_left, creditor_left))
        if amount > 0:
            edges.append(DebtEdge(debtors[d_idx][0], creditors[c_idx][0], amount))

        debtor_left = _money(debtor_left - amount)
        creditor_left = _money(creditor_left - amount)

        if creditor_left <= 0:
            c_idx += 1
            if c_idx < len(creditors):
                creditor_left = creditors[c_idx][1]
        if debtor_left <= 0:
            d_idx += 1
            if d_idx < len(debtors):
                debtor_left = debtors[d_idx][1]

    return edges


def settlement_edge(tx_type: TransactionType, creator_id: UUID, counterparty_id: UUID, amount: float) -> DebtEdge:
    # "Le pagué a X": X queda debiendo al creador, lo que compensa la deuda previa
    if tx_type == TransactionType.personal:
        return DebtEdge(debtor_id=counterparty_id, creditor_id=creator_id, amount=_money(amount))
    # "X me pagó"
    return DebtEdge(debtor_id=creator_id, creditor_id=counterparty_id, amount=_money(amount))


def compute_edges(tx: Transaction) -> List[DebtEdge]:
    """Aristas que explican el desbalance de una transacción. Vacío si no aplica."""
    if tx.is_deleted:
        return []

    split = parse_split_details(tx.split_details)
    if split is None:
        return []

    tx_type = TransactionType(tx.type)
    if split.method == SplitMethod.settlement.value:
        counterparty: Optional[UUID] = split.counterparty_id
        if counterparty is None or tx_type == TransactionType.shared:
            return []
        return [settlement_edge(tx_type, UUID(str(tx.creator_id)), counterparty, tx.amount)]

    if tx_type != TransactionType.shared:
        return []

    return match_debts(net_positions(parse_payers(tx.payers), split.participants))
