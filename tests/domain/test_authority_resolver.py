"""
Tests for authority resolution (``treasury_kernel.domain.authority``).

Covers the pure amount -> magnitude -> level mapping, the nested role
hierarchy and the one-or-two hop approval chain.

Invariants tested:
- Threshold boundaries are inclusive upper bounds.
- Authority is nested: a role authorized at level N is authorized below N.
- An amount needing level L+1 is never approvable by a best rank of L.
- Members need a second hop from MEDIUM, financial leaders from LARGE.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from treasury_kernel.domain.authority import (
    ApprovalLevel,
    AuthorityPolicy,
    AuthorityResolver,
    CreatorType,
    Magnitude,
)
from treasury_kernel.exceptions import ConfigurationError

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


# =========================================================================
# Magnitude and level
# =========================================================================


class TestMagnitude:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            ("0.01", Magnitude.SMALL),
            ("4500", Magnitude.SMALL),
            ("5000", Magnitude.SMALL),
            ("5000.01", Magnitude.MEDIUM),
            ("20000", Magnitude.MEDIUM),
            ("20000.01", Magnitude.LARGE),
            ("30000", Magnitude.LARGE),
            ("50000", Magnitude.LARGE),
            ("50000.01", Magnitude.CRITICAL),
            ("1000000", Magnitude.CRITICAL),
        ],
    )
    def test_boundaries_are_inclusive_upper_bounds(self, amount, expected):
        assert AuthorityResolver().magnitude(Decimal(amount)) == expected

    @pytest.mark.parametrize(
        "amount, level",
        [
            ("4500", ApprovalLevel.TREASURER),
            ("15000", ApprovalLevel.DIRECTOR),
            ("30000", ApprovalLevel.BOARD),
            ("75000", ApprovalLevel.PASTOR),
        ],
    )
    def test_required_level_follows_magnitude(self, amount, level):
        assert AuthorityResolver().required_level(Decimal(amount)) == level

    def test_custom_thresholds(self):
        resolver = AuthorityResolver(
            AuthorityPolicy(
                small_limit=Decimal("100"),
                medium_limit=Decimal("1000"),
                large_limit=Decimal("10000"),
            )
        )
        assert resolver.magnitude(Decimal("100")) == Magnitude.SMALL
        assert resolver.magnitude(Decimal("100.01")) == Magnitude.MEDIUM
        assert resolver.magnitude(Decimal("10000.01")) == Magnitude.CRITICAL

    @given(amounts, amounts)
    @settings(max_examples=200)
    def test_magnitude_is_monotonic(self, a, b):
        resolver = AuthorityResolver()
        low, high = min(a, b), max(a, b)
        assert resolver.magnitude(low).rank <= resolver.magnitude(high).rank


class TestPolicyValidation:
    @pytest.mark.parametrize(
        "small, medium, large",
        [
            ("5000", "5000", "50000"),
            ("20000", "5000", "50000"),
            ("0", "5000", "50000"),
            ("5000", "60000", "50000"),
        ],
    )
    def test_thresholds_must_ascend(self, small, medium, large):
        with pytest.raises(ConfigurationError):
            AuthorityPolicy(
                small_limit=Decimal(small),
                medium_limit=Decimal(medium),
                large_limit=Decimal(large),
            )

    def test_rank_out_of_range_rejected(self):
        with pytest.raises(ConfigurationError):
            AuthorityPolicy(role_ranks={"TREASURER": 5})

    def test_role_names_normalized(self):
        policy = AuthorityPolicy(
            role_ranks={"treasurer": 1},
            admin_roles=frozenset({"admin"}),
            disbursement_roles=frozenset({"treasurer"}),
        )
        assert policy.role_ranks == {"TREASURER": 1}
        assert policy.admin_roles == frozenset({"ADMIN"})
        assert policy.disbursement_roles == frozenset({"TREASURER"})


# =========================================================================
# Role hierarchy
# =========================================================================


class TestAuthorization:
    @pytest.mark.parametrize(
        "role, highest",
        [
            ("TREASURER", ApprovalLevel.TREASURER),
            ("FINANCIAL_LEADER", ApprovalLevel.TREASURER),
            ("DIRECTOR", ApprovalLevel.DIRECTOR),
            ("BOARD", ApprovalLevel.BOARD),
            ("PASTOR", ApprovalLevel.PASTOR),
            ("ADMIN", ApprovalLevel.PASTOR),
        ],
    )
    def test_authority_is_nested(self, role, highest):
        resolver = AuthorityResolver()
        for level in ApprovalLevel:
            assert resolver.is_authorized({role}, level) == (level.rank <= highest.rank)

    def test_member_has_no_authority(self):
        resolver = AuthorityResolver()
        assert resolver.rank_of({"MEMBER"}) == 0
        assert not resolver.is_authorized({"MEMBER"}, ApprovalLevel.TREASURER)

    def test_best_role_counts(self):
        resolver = AuthorityResolver()
        assert resolver.is_authorized({"MEMBER", "BOARD"}, ApprovalLevel.BOARD)

    def test_roles_are_case_insensitive(self):
        assert AuthorityResolver().is_authorized({"director"}, ApprovalLevel.DIRECTOR)

    def test_authorized_roles_for_board(self):
        assert AuthorityResolver().authorized_roles(ApprovalLevel.BOARD) == (
            "BOARD",
            "ADMIN",
            "PASTOR",
        )

    @given(amounts, st.sampled_from(["TREASURER", "DIRECTOR", "BOARD", "PASTOR"]))
    def test_role_below_required_level_never_approves(self, amount, role):
        resolver = AuthorityResolver()
        level = resolver.required_level(amount)
        if resolver.rank_of({role}) < level.rank:
            assert not resolver.is_authorized({role}, level)
        else:
            assert resolver.is_authorized({role}, level)


class TestCapabilities:
    def test_admin_roles(self):
        resolver = AuthorityResolver()
        assert resolver.is_admin({"ADMIN"})
        assert resolver.is_admin({"PASTOR"})
        assert not resolver.is_admin({"BOARD"})

    def test_disbursement_roles(self):
        resolver = AuthorityResolver()
        assert resolver.can_disburse({"TREASURER"})
        assert resolver.can_disburse({"FINANCIAL_LEADER"})
        assert resolver.can_disburse({"ADMIN"})
        assert not resolver.can_disburse({"PASTOR"})
        assert not resolver.can_disburse({"MEMBER"})

    def test_creator_types(self):
        resolver = AuthorityResolver()
        assert resolver.may_create_as({"MEMBER"}, CreatorType.MEMBER)
        assert not resolver.may_create_as({"MEMBER"}, CreatorType.FINANCIAL_LEADER)
        assert resolver.may_create_as({"FINANCIAL_LEADER"}, CreatorType.FINANCIAL_LEADER)
        assert resolver.default_creator_type({"FINANCIAL_LEADER"}) == CreatorType.FINANCIAL_LEADER
        assert resolver.default_creator_type({"BOARD"}) == CreatorType.MEMBER


# =========================================================================
# Approval chain
# =========================================================================


class TestApprovalChain:
    @pytest.mark.parametrize(
        "amount, creator, hops",
        [
            ("4500", CreatorType.MEMBER, 1),
            ("4500", CreatorType.FINANCIAL_LEADER, 1),
            ("15000", CreatorType.MEMBER, 2),
            ("15000", CreatorType.FINANCIAL_LEADER, 1),
            ("30000", CreatorType.MEMBER, 2),
            ("30000", CreatorType.FINANCIAL_LEADER, 2),
            ("75000", CreatorType.MEMBER, 2),
            ("75000", CreatorType.FINANCIAL_LEADER, 2),
        ],
    )
    def test_hops(self, amount, creator, hops):
        chain = AuthorityResolver().approval_chain(Decimal(amount), creator)
        assert chain.hops == hops
        assert len(chain.levels) == hops

    def test_every_hop_requires_the_same_level(self):
        chain = AuthorityResolver().approval_chain(Decimal("30000"))
        assert chain.magnitude == Magnitude.LARGE
        assert chain.levels == (ApprovalLevel.BOARD, ApprovalLevel.BOARD)

    def test_default_creator_is_member(self):
        chain = AuthorityResolver().approval_chain(Decimal("15000"))
        assert chain.hops == 2

    @given(amounts, st.sampled_from(list(CreatorType)))
    def test_chain_is_deterministic(self, amount, creator):
        resolver = AuthorityResolver()
        assert resolver.approval_chain(amount, creator) == resolver.approval_chain(
            amount, creator
        )

    @given(amounts)
    def test_financial_leader_never_needs_more_hops_than_member(self, amount):
        resolver = AuthorityResolver()
        member = resolver.approval_chain(amount, CreatorType.MEMBER)
        leader = resolver.approval_chain(amount, CreatorType.FINANCIAL_LEADER)
        assert leader.hops <= member.hops
