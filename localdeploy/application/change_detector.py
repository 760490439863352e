from localdeploy.domain.models import SyncResult


class ChangeDetector:
    """
    Decides whether a sync result warrants a new build/run.

    Kept apart from RepositoryHandle so rebuild policies can change without
    touching how the repository is fetched.
    """

    def has_new_commits(self, result: SyncResult) -> bool:
        return result.changed
