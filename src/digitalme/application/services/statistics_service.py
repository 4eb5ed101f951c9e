from __future__ import annotations

from dataclasses import dataclass, field

from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo
from digitalme.infrastructure.db.repos.user_repo import UserRepo


@dataclass(slots=True)
class UsageStatistics:
    users_total: int
    resources_total: int
    resources_public: int
    resources_private: int
    users_by_level: dict[str, int] = field(default_factory=dict)
    resources_by_type: dict[str, int] = field(default_factory=dict)


class StatisticsService:
    def __init__(self, user_repo: UserRepo, resource_repo: ResourceRepo) -> None:
        self.user_repo = user_repo
        self.resource_repo = resource_repo

    def usage_statistics(self) -> UsageStatistics:
        users_by_level = self.user_repo.count_by_level()
        public, private = self.resource_repo.count_by_visibility()
        return UsageStatistics(
            users_total=sum(users_by_level.values()),
            resources_total=public + private,
            resources_public=public,
            resources_private=private,
            users_by_level=users_by_level,
            resources_by_type=self.resource_repo.count_by_type(),
        )
