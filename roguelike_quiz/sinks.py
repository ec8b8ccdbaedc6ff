"""
Outbound collaborators of the engine: activity logging and score publication.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import discord

from .models import StageType


class ActivitySink(ABC):
    """Receives one record per answered question."""

    @abstractmethod
    async def record_activity(
        self,
        user_id: str,
        quiz_id: str,
        question_index: int,
        answer_data: Dict,
        is_correct: bool,
        points: int,
        time_spent: float,
        stage_type: StageType,
    ) -> None:
        raise NotImplementedError


class ScorePublisher(ABC):
    """Receives the final score when a run completes."""

    @abstractmethod
    async def publish_score(self, user_id: str, quiz_id: str, score: int) -> None:
        raise NotImplementedError


class LoggingActivitySink(ActivitySink):
    """Writes activity records to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def record_activity(self, user_id, quiz_id, question_index, answer_data,
                              is_correct, points, time_spent, stage_type) -> None:
        self.logger.info(
            f"Activity: user={user_id} quiz={quiz_id} question={question_index} "
            f"stage={stage_type.value} correct={is_correct} points={points}",
            extra={
                'event_type': 'roguelike_activity',
                'user_id': user_id,
                'quiz_id': quiz_id,
                'question_index': question_index,
                'answer_data': answer_data,
                'is_correct': is_correct,
                'points': points,
                'time_spent': time_spent,
                'stage_type': stage_type.value,
            }
        )


class LoggingScorePublisher(ScorePublisher):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def publish_score(self, user_id: str, quiz_id: str, score: int) -> None:
        self.logger.info(
            f"Final score for user {user_id} on quiz {quiz_id}: {score}",
            extra={
                'event_type': 'roguelike_score',
                'user_id': user_id,
                'quiz_id': quiz_id,
                'score': score,
            }
        )


class DiscordScorePublisher(ScorePublisher):
    """Announces final scores in a Discord text channel."""

    def __init__(self, channel: discord.TextChannel, quiz_titles: Optional[Dict[str, str]] = None):
        self.channel = channel
        self.quiz_titles = quiz_titles or {}
        self.logger = logging.getLogger(__name__)

    def build_embed(self, user_id: str, quiz_id: str, score: int) -> discord.Embed:
        embed = discord.Embed(
            title="🏁 Roguelike Run Complete",
            description=f"<@{user_id}> finished the run!",
            color=0xffd700
        )
        embed.add_field(
            name="📚 Quiz",
            value=self.quiz_titles.get(quiz_id, quiz_id),
            inline=True
        )
        embed.add_field(
            name="🏆 Final Score",
            value=str(score),
            inline=True
        )
        return embed

    async def publish_score(self, user_id: str, quiz_id: str, score: int) -> None:
        # HTTP errors propagate to the dispatcher, which logs and drops them
        await self.channel.send(embed=self.build_embed(user_id, quiz_id, score))
        self.logger.info(f"Published score {score} for user {user_id} to Discord")
