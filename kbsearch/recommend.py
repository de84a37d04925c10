"""
Content recommendations from interaction history.

Profile:
    Every recent interaction adds the viewed document's normalized term
    vector plus "category:<name>" / "tag:<name>" features, weighted by the
    kind of interaction and decayed by age:

        weight = kind_weight × 0.5 ** (age_days / half_life_days)

Sources, in the order they fill the result list:
    content_based  Documents sharing at least one category or tag with the
                   profile, ranked by cosine similarity, then view count desc,
                   then doc id.
    collaborative  Documents the most similar users (profile cosine above
                   min_user_similarity) interacted with, scored by
                   Σ similarity × interaction weight.
    trending       Documents with interactions inside the trending window,
                   scored by Σ exp(-age_days / window_days).
    popular        log(views) × 2 + likes × 0.5 + freshness bonus. Fills
                   whatever is left, so users without history still get results.

Every source skips the document being viewed, documents the user authored,
documents the user already interacted with and documents already chosen.
"""

import logging
import math
import threading
from collections import Counter, defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional, Set, Tuple

from .clock import SystemClock
from .config import SearchConfig
from .index.generation import IndexGeneration
from .models import Interaction, Recommendation, SearchDocument, metadata_number

logger = logging.getLogger(__name__)

KIND_WEIGHTS = {
    "view": 1.0,
    "download": 1.5,
    "like": 2.0,
    "share": 2.5,
}

Profile = Dict[str, float]


class InteractionLog:
    """
    In-memory interaction history provider.

    Keeps the most recent `history_limit` interactions per user and running
    view/like counts per document.
    """

    def __init__(self, history_limit: int = 200):
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._by_user: Dict[str, Deque[Interaction]] = defaultdict(lambda: deque(maxlen=self.history_limit))
        self._counts: Dict[str, Counter] = defaultdict(Counter)

    def record(self, interaction: Interaction) -> None:
        with self._lock:
            self._by_user[interaction.user_id].append(interaction)
            self._counts[interaction.kind][interaction.doc_id] += 1

    def recent(self, user_id: str, limit: int = 50) -> List[Interaction]:
        """Newest first"""
        with self._lock:
            history = list(self._by_user.get(user_id, ()))
        history.sort(key=lambda i: i.timestamp, reverse=True)
        return history[:limit]

    def users(self) -> List[str]:
        with self._lock:
            return sorted(self._by_user)

    def since(self, cutoff: datetime) -> List[Interaction]:
        """Every retained interaction at or after `cutoff`, any user"""
        with self._lock:
            return [i for history in self._by_user.values() for i in history if i.timestamp >= cutoff]

    def view_count(self, doc_id: str) -> int:
        return self._counts["view"][doc_id]

    def like_count(self, doc_id: str) -> int:
        return self._counts["like"][doc_id]


def cosine(left: Profile, right: Profile) -> float:
    if len(left) > len(right):
        left, right = right, left
    dot = sum(value * right.get(key, 0.0) for key, value in left.items())
    if dot == 0.0:
        return 0.0
    norm = math.sqrt(sum(v * v for v in left.values())) * math.sqrt(sum(v * v for v in right.values()))
    return dot / norm if norm else 0.0


def _label_name(feature: str) -> str:
    return feature.split(":", 1)[1]


class RecommendationEngine:
    """
    Args:
        config: Half-life, history window, profile cache TTL, trending window
            and similar-user settings
        interactions: History provider
        clock: Time source for recency decay and profile expiry
    """

    def __init__(self, config: SearchConfig, interactions: InteractionLog, clock=None):
        self.config = config
        self.interactions = interactions
        self.clock = clock or SystemClock()
        self._profiles: Dict[str, Tuple[int, datetime, Profile]] = {}
        self._lock = threading.Lock()

    def embed(self, doc: SearchDocument) -> Optional[List[float]]:
        """Semantic vector hook; no embedding model is wired in"""
        return None

    def views(self, doc: SearchDocument) -> float:
        return (metadata_number(doc.metadata, "viewCount") or 0.0) + self.interactions.view_count(doc.id)

    def likes(self, doc: SearchDocument) -> float:
        return (metadata_number(doc.metadata, "likeCount") or 0.0) + self.interactions.like_count(doc.id)

    def document_vector(self, generation: IndexGeneration, doc_id: str) -> Profile:
        forward = generation.forward.get(doc_id)
        doc = generation.documents.get(doc_id)
        if forward is None or doc is None:
            return {}
        vector = dict(forward.normalized_vector())
        for category in doc.categories:
            vector[f"category:{category}"] = 1.0
        for tag in doc.tags:
            vector[f"tag:{tag}"] = 1.0
        return vector

    def interaction_weight(self, interaction: Interaction, now: datetime) -> float:
        """kind_weight × 0.5 ** (age_days / half_life_days)"""
        age_days = max(0.0, (now - interaction.timestamp).total_seconds() / 86400)
        half_life = self.config.recommendation_half_life_days
        return KIND_WEIGHTS.get(interaction.kind, 1.0) * 0.5 ** (age_days / half_life)

    def profile(self, user_id: str, generation: IndexGeneration) -> Profile:
        """Interest profile, cached per user and generation version"""
        now = self.clock.now()
        cached = self._profiles.get(user_id)
        if cached is not None:
            version, built_at, profile = cached
            if version == generation.version and (now - built_at).total_seconds() < self.config.profile_ttl_seconds:
                return profile

        profile: Profile = defaultdict(float)
        for interaction in self.interactions.recent(user_id, self.config.recommendation_history_limit):
            vector = self.document_vector(generation, interaction.doc_id)
            if not vector:
                continue
            weight = self.interaction_weight(interaction, now)
            for feature, value in vector.items():
                profile[feature] += weight * value

        profile = dict(profile)
        with self._lock:
            self._profiles[user_id] = (generation.version, now, profile)
        return profile

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._profiles.pop(user_id, None)

    def reset_profiles(self) -> int:
        """Drop every cached profile; returns how many were dropped"""
        with self._lock:
            dropped = len(self._profiles)
            self._profiles.clear()
        return dropped

    def recommend(
        self,
        user_id: str,
        generation: IndexGeneration,
        current_doc_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[SearchDocument]:
        """
        Recommend documents for a user.

        Never returns `current_doc_id` or documents the user authored.
        Personalized results come first; trending and popular documents fill the rest.
        """
        return [r.document for r in self.recommendations(user_id, generation, current_doc_id, limit)]

    def recommendations(
        self,
        user_id: str,
        generation: IndexGeneration,
        current_doc_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[Recommendation]:
        """Like recommend(), with the score, reason and source of every entry"""
        if limit <= 0:
            return []

        skip: Set[str] = {current_doc_id} if current_doc_id else set()
        skip.update(doc.id for doc in generation.documents.values() if user_id and doc.author_id == user_id)
        skip.update(i.doc_id for i in self.interactions.recent(user_id, self.config.recommendation_history_limit))

        profile = self.profile(user_id, generation)
        results: List[Recommendation] = []

        def take(batch: List[Recommendation]) -> None:
            for recommendation in batch:
                if len(results) >= limit:
                    return
                if recommendation.document.id not in skip:
                    results.append(recommendation)
                    skip.add(recommendation.document.id)

        if profile:
            take(self._content_based(profile, generation, skip, limit))
            if len(results) < limit:
                take(self._collaborative(user_id, profile, generation, skip, limit - len(results)))
        else:
            logger.debug(f"No interaction history for user {user_id}, skipping personalized sources")

        if len(results) < limit:
            take(self._trending(generation, skip, limit - len(results)))
        if len(results) < limit:
            take(self._popular(generation, skip, limit - len(results)))

        logger.debug(
            f"Recommendations for {user_id}: "
            f"{dict(Counter(r.source for r in results))} (generation v{generation.version})"
        )
        return results

    def _content_based(
        self,
        profile: Profile,
        generation: IndexGeneration,
        excluded: Set[str],
        limit: int,
    ) -> List[Recommendation]:
        labels = {feature for feature in profile if feature.startswith(("category:", "tag:"))}
        scored = []
        for doc_id, doc in generation.documents.items():
            if doc_id in excluded:
                continue
            vector = self.document_vector(generation, doc_id)
            shared = labels.intersection(vector)
            if not shared:
                continue
            similarity = cosine(profile, vector)
            if similarity > 0:
                strongest = min(shared, key=lambda feature: (-profile[feature], feature))
                scored.append((similarity, self.views(doc), doc, strongest))

        scored.sort(key=lambda item: (-item[0], -item[1], item[2].id))
        return [
            Recommendation(
                document=doc,
                score=round(similarity, 6),
                reason=f"Related to {_label_name(label)}",
                source="content_based",
            )
            for similarity, _, doc, label in scored[:limit]
        ]

    def similar_users(self, user_id: str, profile: Profile, generation: IndexGeneration) -> List[Tuple[float, str]]:
        """(similarity, user) pairs above min_user_similarity, most similar first"""
        if not profile or self.config.similar_users_limit <= 0:
            return []

        scored = []
        for other in self.interactions.users():
            if other == user_id:
                continue
            similarity = cosine(profile, self.profile(other, generation))
            if similarity >= self.config.min_user_similarity:
                scored.append((similarity, other))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return scored[:self.config.similar_users_limit]

    def _collaborative(
        self,
        user_id: str,
        profile: Profile,
        generation: IndexGeneration,
        excluded: Set[str],
        limit: int,
    ) -> List[Recommendation]:
        neighbours = self.similar_users(user_id, profile, generation)
        if not neighbours:
            return []

        now = self.clock.now()
        scores: Dict[str, float] = defaultdict(float)
        supporters: Dict[str, Set[str]] = defaultdict(set)
        for similarity, other in neighbours:
            for interaction in self.interactions.recent(other, self.config.recommendation_history_limit):
                doc_id = interaction.doc_id
                if doc_id in excluded or doc_id not in generation.documents:
                    continue
                scores[doc_id] += similarity * self.interaction_weight(interaction, now)
                supporters[doc_id].add(other)

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
        recommendations = []
        for doc_id, score in ranked:
            count = len(supporters[doc_id])
            recommendations.append(Recommendation(
                document=generation.documents[doc_id],
                score=round(score, 6),
                reason=f"Viewed by {count} similar user{'s' if count != 1 else ''}",
                source="collaborative",
            ))
        return recommendations

    def _trending(self, generation: IndexGeneration, excluded: Set[str], limit: int) -> List[Recommendation]:
        now = self.clock.now()
        window = self.config.trending_window_days
        scores: Dict[str, float] = defaultdict(float)
        counts: Counter = Counter()
        for interaction in self.interactions.since(now - timedelta(days=window)):
            doc_id = interaction.doc_id
            if doc_id in excluded or doc_id not in generation.documents:
                continue
            age_days = max(0.0, (now - interaction.timestamp).total_seconds() / 86400)
            scores[doc_id] += math.exp(-age_days / window)
            counts[doc_id] += 1

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            Recommendation(
                document=generation.documents[doc_id],
                score=round(score, 6),
                reason=f"Trending: {counts[doc_id]} interactions in the last {window:g} days",
                source="trending",
            )
            for doc_id, score in ranked
        ]

    def popularity(self, doc: SearchDocument) -> float:
        days_old = (self.clock.now() - doc.created_at).total_seconds() / 86400
        return math.log(max(self.views(doc), 1.0)) * 2 + self.likes(doc) * 0.5 + max(0.0, 30 - days_old) * 0.2

    def popular(self, generation: IndexGeneration, excluded: Set[str], limit: int) -> List[SearchDocument]:
        ranked = sorted(
            (doc for doc_id, doc in generation.documents.items() if doc_id not in excluded),
            key=lambda doc: (-self.popularity(doc), -self.views(doc), doc.id),
        )
        return ranked[:limit]

    def _popular(self, generation: IndexGeneration, excluded: Set[str], limit: int) -> List[Recommendation]:
        return [
            Recommendation(
                document=doc,
                score=round(self.popularity(doc), 6),
                reason="Popular in the knowledge base",
                source="popular",
            )
            for doc in self.popular(generation, excluded, limit)
        ]
