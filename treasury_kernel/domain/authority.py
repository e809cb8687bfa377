"""
Authority resolution (``treasury_kernel.domain.authority``).

Responsibility
--------------
Maps a requisition amount to its magnitude, the authority level required
to approve it, and the approval chain (one or two hops).  Decides whether
a role set holds that authority.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O, no mutable state.  The policy
is handed in as a frozen value; ``treasury_config.bridges`` builds it from
YAML configuration.

Invariants enforced
-------------------
* Thresholds are strictly ascending: T1 < T2 < T3.
* Authority is strictly nested: a role whose rank is N is authorized at
  every level whose rank is <= N.
* An amount requiring level L+1 is never approvable by a role set whose
  best rank is L.
* The chain is a function of (amount, creator type) only.

Magnitude table (defaults)
--------------------------
=========  ====================  ==========  ====
Magnitude  Amount                Level       Rank
=========  ====================  ==========  ====
SMALL      amount <= 5,000       TREASURER   1
MEDIUM     <= 20,000             DIRECTOR    2
LARGE      <= 50,000             BOARD       3
CRITICAL   > 50,000              PASTOR      4
=========  ====================  ==========  ====
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from treasury_kernel.exceptions import ConfigurationError


class Magnitude(str, Enum):
    """Size bucket of a requisition amount."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _MAGNITUDE_ORDER.index(self) + 1


_MAGNITUDE_ORDER = (
    Magnitude.SMALL,
    Magnitude.MEDIUM,
    Magnitude.LARGE,
    Magnitude.CRITICAL,
)


class ApprovalLevel(str, Enum):
    """Authority tier, lowest first."""

    TREASURER = "treasurer"
    DIRECTOR = "director"
    BOARD = "board"
    PASTOR = "pastor"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self) + 1


_LEVEL_ORDER = (
    ApprovalLevel.TREASURER,
    ApprovalLevel.DIRECTOR,
    ApprovalLevel.BOARD,
    ApprovalLevel.PASTOR,
)

_LEVEL_FOR_MAGNITUDE: dict[Magnitude, ApprovalLevel] = {
    Magnitude.SMALL: ApprovalLevel.TREASURER,
    Magnitude.MEDIUM: ApprovalLevel.DIRECTOR,
    Magnitude.LARGE: ApprovalLevel.BOARD,
    Magnitude.CRITICAL: ApprovalLevel.PASTOR,
}


class CreatorType(str, Enum):
    """Who submitted the requisition.

    FINANCIAL_LEADER is the privileged submitter whose MEDIUM requisitions
    skip the second review hop.
    """

    MEMBER = "member"
    FINANCIAL_LEADER = "financial_leader"


# Role name -> authority rank.  Roles not listed carry no approval authority.
DEFAULT_ROLE_RANKS: Mapping[str, int] = {
    "TREASURER": ApprovalLevel.TREASURER.rank,
    "FINANCIAL_LEADER": ApprovalLevel.TREASURER.rank,
    "DIRECTOR": ApprovalLevel.DIRECTOR.rank,
    "BOARD": ApprovalLevel.BOARD.rank,
    "PASTOR": ApprovalLevel.PASTOR.rank,
    "ADMIN": ApprovalLevel.PASTOR.rank,
}


@dataclass(frozen=True)
class AuthorityPolicy:
    """Frozen inputs of the resolver.

    ``role_ranks`` maps role names (case-insensitive) to the highest level
    rank the role may approve.  ``admin_roles`` may cancel approved
    requisitions; ``disbursement_roles`` may execute them.  Holders of
    ``privileged_creator_roles`` submit as FINANCIAL_LEADER.
    """

    small_limit: Decimal = Decimal("5000")
    medium_limit: Decimal = Decimal("20000")
    large_limit: Decimal = Decimal("50000")
    role_ranks: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_ROLE_RANKS))
    admin_roles: frozenset[str] = frozenset({"ADMIN", "PASTOR"})
    disbursement_roles: frozenset[str] = frozenset({"TREASURER", "FINANCIAL_LEADER", "ADMIN"})
    privileged_creator_roles: frozenset[str] = frozenset({"FINANCIAL_LEADER"})
    dual_approval_from: Magnitude = Magnitude.LARGE
    member_dual_approval_from: Magnitude = Magnitude.MEDIUM

    def __post_init__(self) -> None:
        if not (Decimal(0) < self.small_limit < self.medium_limit < self.large_limit):
            raise ConfigurationError(
                "thresholds must be positive and strictly ascending, got "
                f"{self.small_limit} / {self.medium_limit} / {self.large_limit}"
            )
        for role, rank in self.role_ranks.items():
            if not 1 <= rank <= len(_LEVEL_ORDER):
                raise ConfigurationError(f"role {role} has out-of-range rank {rank}")
        object.__setattr__(
            self,
            "role_ranks",
            {role.upper(): rank for role, rank in self.role_ranks.items()},
        )
        object.__setattr__(self, "admin_roles", frozenset(r.upper() for r in self.admin_roles))
        object.__setattr__(
            self, "disbursement_roles", frozenset(r.upper() for r in self.disbursement_roles)
        )
        object.__setattr__(
            self,
            "privileged_creator_roles",
            frozenset(r.upper() for r in self.privileged_creator_roles),
        )


@dataclass(frozen=True)
class ApprovalChain:
    """Ordered hops required before a requisition becomes APPROVED.

    Every hop requires the same level, each satisfied by a different
    identity.
    """

    magnitude: Magnitude
    level: ApprovalLevel
    hops: int

    @property
    def levels(self) -> tuple[ApprovalLevel, ...]:
        return (self.level,) * self.hops


def _normalize_roles(roles: Iterable[str]) -> frozenset[str]:
    return frozenset(role.upper() for role in roles)


class AuthorityResolver:
    """Deterministic amount -> authority mapping.

    Usage:
        resolver = AuthorityResolver()
        level = resolver.required_level(Decimal("15000"))   # DIRECTOR
        resolver.is_authorized({"BOARD"}, level)             # True
    """

    def __init__(self, policy: AuthorityPolicy | None = None):
        self._policy = policy or AuthorityPolicy()

    @property
    def policy(self) -> AuthorityPolicy:
        return self._policy

    def magnitude(self, amount: Decimal) -> Magnitude:
        p = self._policy
        if amount <= p.small_limit:
            return Magnitude.SMALL
        if amount <= p.medium_limit:
            return Magnitude.MEDIUM
        if amount <= p.large_limit:
            return Magnitude.LARGE
        return Magnitude.CRITICAL

    def required_level(self, amount: Decimal) -> ApprovalLevel:
        return _LEVEL_FOR_MAGNITUDE[self.magnitude(amount)]

    def rank_of(self, roles: Iterable[str]) -> int:
        """Highest authority rank held by ``roles``; 0 when none."""
        ranks = [self._policy.role_ranks.get(role, 0) for role in _normalize_roles(roles)]
        return max(ranks, default=0)

    def is_authorized(self, roles: Iterable[str], level: ApprovalLevel) -> bool:
        return self.rank_of(roles) >= level.rank

    def authorized_roles(self, level: ApprovalLevel) -> tuple[str, ...]:
        """Role names that may approve at ``level``, sorted by rank then name."""
        eligible = [
            (rank, role)
            for role, rank in self._policy.role_ranks.items()
            if rank >= level.rank
        ]
        return tuple(role for _, role in sorted(eligible))

    def approval_chain(
        self,
        amount: Decimal,
        creator_type: CreatorType = CreatorType.MEMBER,
    ) -> ApprovalChain:
        magnitude = self.magnitude(amount)
        threshold = self._policy.dual_approval_from
        if creator_type == CreatorType.MEMBER:
            threshold = min(
                threshold, self._policy.member_dual_approval_from, key=lambda m: m.rank
            )
        hops = 2 if magnitude.rank >= threshold.rank else 1
        return ApprovalChain(
            magnitude=magnitude,
            level=_LEVEL_FOR_MAGNITUDE[magnitude],
            hops=hops,
        )

    def is_admin(self, roles: Iterable[str]) -> bool:
        return bool(_normalize_roles(roles) & self._policy.admin_roles)

    def can_disburse(self, roles: Iterable[str]) -> bool:
        return bool(_normalize_roles(roles) & self._policy.disbursement_roles)

    def may_create_as(self, roles: Iterable[str], creator_type: CreatorType) -> bool:
        """MEMBER is open to everyone; FINANCIAL_LEADER needs a privileged role."""
        if creator_type == CreatorType.MEMBER:
            return True
        return bool(_normalize_roles(roles) & self._policy.privileged_creator_roles)

    def default_creator_type(self, roles: Iterable[str]) -> CreatorType:
        if self.may_create_as(roles, CreatorType.FINANCIAL_LEADER):
            return CreatorType.FINANCIAL_LEADER
        return CreatorType.MEMBER
