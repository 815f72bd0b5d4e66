from hackpulse.services.ai_service import AIClassifier
from hackpulse.services.analysis_queue import AnalysisQueue
from hackpulse.services.commit_service import BatchResult, CommitIntakeService, IntakeResult
from hackpulse.services.event_service import EventService
from hackpulse.services.expiry_watcher import ExpiryWatcher
from hackpulse.services.github_service import GitHubService
from hackpulse.services.notification_service import NotificationService
from hackpulse.services.score_service import ScoreService
from hackpulse.services.scoring_service import ScoringService
from hackpulse.services.user_service import UserService

__all__ = [
    "AIClassifier",
    "AnalysisQueue",
    "BatchResult",
    "CommitIntakeService",
    "EventService",
    "ExpiryWatcher",
    "GitHubService",
    "IntakeResult",
    "NotificationService",
    "ScoreService",
    "ScoringService",
    "UserService",
]
