"""
Referral graph.

Owns the referral forest: edge creation with cycle guard, ordered children,
bounded ancestor walks and breadth-first subtree traversal.
"""

from collections import defaultdict
from collections.abc import AsyncIterator
from dataclasses import dataclass

from affiliate.config.constants import (
    MAX_ANCESTOR_WALK,
    MAX_CYCLE_CHECK_DEPTH,
    MAX_SUBTREE_DEPTH,
)
from affiliate.models import Referral, ReferralStatus, User
from affiliate.services.base_service import BaseService, transactional
from affiliate.utils.exceptions import (
    GraphIntegrityError,
    NotFoundError,
    ValidationError,
)


@dataclass
class ReferralRecordResult:
    """Outcome of recording a referral edge."""

    referral: Referral
    created: bool


class ReferralGraph(BaseService):
    """Referral forest store with invariant enforcement."""

    async def record_referral(
        self, referrer_id: int, referred_id: int
    ) -> ReferralRecordResult:
        """
        Create the edge referrer -> referred.

        Recording the same pair again is a successful no-op so
        at-least-once delivery of registration events is safe.

        Args:
            referrer_id: User who invited
            referred_id: User who was invited

        Returns:
            ReferralRecordResult with the edge and whether it was created

        Raises:
            ValidationError: Self-referral, conflicting parent or cycle
            NotFoundError: Unknown referrer or referred user
        """
        if referrer_id == referred_id:
            raise ValidationError("A user cannot refer themselves")

        async with self.store.transaction():
            # Lock in ID order so two opposite registrations cannot deadlock
            locked: dict[int, User | None] = {}
            for user_id in sorted((referrer_id, referred_id)):
                locked[user_id] = await self.store.get_user(user_id, for_update=True)

            referrer = locked[referrer_id]
            referred = locked[referred_id]
            if referrer is None:
                raise NotFoundError(f"Referrer {referrer_id} not found")
            if referred is None:
                raise NotFoundError(f"Referred user {referred_id} not found")

            existing = await self.store.get_referral_by_referred(referred_id)
            if existing is not None:
                if existing.referrer_id == referrer_id:
                    self.logger.debug(
                        "Referral already recorded",
                        extra={"referrer_id": referrer_id, "referred_id": referred_id},
                    )
                    return ReferralRecordResult(referral=existing, created=False)
                raise ValidationError(
                    f"User {referred_id} already has referrer {existing.referrer_id}"
                )
            if referred.referred_by is not None:
                raise ValidationError(
                    f"User {referred_id} already has referrer {referred.referred_by}"
                )

            ancestors = await self.get_ancestors(
                referrer_id, max_hops=MAX_CYCLE_CHECK_DEPTH
            )
            if any(ancestor.id == referred_id for ancestor in ancestors):
                self.logger.warning(
                    "Referral loop detected",
                    extra={
                        "referrer_id": referrer_id,
                        "referred_id": referred_id,
                        "chain_length": len(ancestors),
                    },
                )
                raise ValidationError(
                    f"User {referrer_id} is a descendant of {referred_id}; "
                    "the referral would create a cycle"
                )

            referrer_edge = await self.store.get_referral_by_referred(referrer_id)
            referral = await self.store.create_referral(
                referrer_id=referrer_id,
                referred_id=referred_id,
                level_in_chain=(
                    referrer_edge.level_in_chain + 1 if referrer_edge else 1
                ),
                status=ReferralStatus.APPROVED.value,
            )
            await self.store.update_user(referred, referred_by=referrer_id)
            await self.store.update_user(
                referrer,
                direct_referrals_count=referrer.direct_referrals_count + 1,
            )

            await self._add_indirect_counts(
                referrer, referred, ancestors[: MAX_SUBTREE_DEPTH - 1]
            )

        self.logger.info(
            "Referral recorded",
            extra={
                "referrer_id": referrer_id,
                "referred_id": referred_id,
                "level_in_chain": referral.level_in_chain,
            },
        )
        return ReferralRecordResult(referral=referral, created=True)

    async def _add_indirect_counts(
        self, referrer: User, referred: User, ancestors: list[User]
    ) -> None:
        """
        Add the referred user and its own subtree to the indirect counters.

        A descendant counts as indirect for an ancestor when it sits between
        2 and MAX_SUBTREE_DEPTH hops below it, the same window ``recount``
        uses.
        """
        # below[d - 1] = descendants of the referred user at depth d
        below = [0] * MAX_SUBTREE_DEPTH
        if referred.direct_referrals_count:
            async for _, depth in self.get_subtree(referred.id, MAX_SUBTREE_DEPTH - 1):
                below[depth - 1] += 1

        gains: dict[int, list[int]] = defaultdict(list)
        for distance, ancestor in enumerate([referrer, *ancestors], start=1):
            if distance > MAX_SUBTREE_DEPTH:
                break
            gained = sum(below[:MAX_SUBTREE_DEPTH - distance])
            if distance >= 2:
                gained += 1
            if gained:
                gains[gained].append(ancestor.id)

        for gained, user_ids in gains.items():
            await self.store.increment_user_fields(
                user_ids, indirect_referrals_count=gained
            )

    async def get_direct_children(
        self, user_id: int, active_only: bool = True
    ) -> list[User]:
        """
        Get direct referrals, earliest referred first.

        The order decides which referrals count as "the first three".

        Args:
            user_id: Referrer user ID
            active_only: Skip inactive users

        Returns:
            List of users
        """
        return await self.store.list_children(user_id, active_only)

    async def get_ancestors(
        self, user_id: int, max_hops: int | None = None
    ) -> list[User]:
        """
        Walk up the referral chain, direct referrer first.

        Args:
            user_id: Starting user ID
            max_hops: Stop after this many ancestors. None walks up to the
                root and treats chains longer than MAX_ANCESTOR_WALK as
                corruption

        Returns:
            List of ancestors

        Raises:
            NotFoundError: If the starting user does not exist
            GraphIntegrityError: On a revisited user, a dangling parent or an
                unbounded walk longer than MAX_ANCESTOR_WALK
        """
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        ancestors: list[User] = []
        seen = {user_id}
        parent_id = user.referred_by

        while parent_id is not None:
            if max_hops is not None and len(ancestors) >= max_hops:
                break
            if parent_id in seen:
                raise GraphIntegrityError(
                    f"Cycle detected above user {user_id} at user {parent_id}"
                )
            if max_hops is None and len(ancestors) >= MAX_ANCESTOR_WALK:
                raise GraphIntegrityError(
                    f"Referral chain above user {user_id} exceeds "
                    f"{MAX_ANCESTOR_WALK} hops"
                )

            parent = await self.store.get_user(parent_id)
            if parent is None:
                raise GraphIntegrityError(
                    f"User {ancestors[-1].id if ancestors else user_id} points "
                    f"at missing referrer {parent_id}"
                )

            ancestors.append(parent)
            seen.add(parent_id)
            parent_id = parent.referred_by

        return ancestors

    async def get_subtree(
        self, user_id: int, max_depth: int, active_only: bool = False
    ) -> AsyncIterator[tuple[User, int]]:
        """
        Breadth-first traversal below a user.

        Yields ``(user, depth)`` pairs, depth 1 being direct referrals. The
        depth is capped at MAX_SUBTREE_DEPTH whatever the caller asks, and
        one adjacency query is issued per layer.

        Args:
            user_id: Root user ID (not yielded)
            max_depth: Requested depth
            active_only: Skip inactive users and their subtrees

        Yields:
            Tuples of (user, depth)

        Raises:
            NotFoundError: If the root user does not exist
        """
        if await self.store.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        depth_cap = max(0, min(max_depth, MAX_SUBTREE_DEPTH))
        visited = {user_id}
        frontier = [user_id]

        for depth in range(1, depth_cap + 1):
            if not frontier:
                return

            children = await self.store.list_children_of_many(frontier, active_only)
            next_frontier = []
            for parent_id in frontier:
                for child in children.get(parent_id, []):
                    if child.id in visited:
                        self.logger.warning(
                            "User reached twice during traversal",
                            extra={"root_id": user_id, "user_id": child.id},
                        )
                        continue
                    visited.add(child.id)
                    next_frontier.append(child.id)
                    yield child, depth

            frontier = next_frontier

    @transactional
    async def recount(self, user_id: int) -> tuple[int, int]:
        """
        Recompute and persist the cached referral counters of a user.

        Direct count is the number of edges created by the user; indirect
        count is the number of descendants from depth 2 to MAX_SUBTREE_DEPTH.

        Args:
            user_id: User ID

        Returns:
            Tuple of (direct_count, indirect_count)
        """
        user = await self.store.get_user(user_id, for_update=True)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        direct = await self.store.count_referrals_by_referrer(user_id)
        indirect = 0
        async for _, depth in self.get_subtree(user_id, MAX_SUBTREE_DEPTH):
            if depth >= 2:
                indirect += 1

        if (direct, indirect) != (
            user.direct_referrals_count, user.indirect_referrals_count
        ):
            self.logger.warning(
                "Cached referral counters drifted",
                extra={
                    "user_id": user_id,
                    "cached": (user.direct_referrals_count, user.indirect_referrals_count),
                    "actual": (direct, indirect),
                },
            )
            await self.store.update_user(
                user,
                direct_referrals_count=direct,
                indirect_referrals_count=indirect,
            )

        return direct, indirect
