# core/fingerprint_engine.py

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from tqdm import tqdm

from config import SystemConfig
from core.errors import GenerationError, HashError, OpenError, StoreError
from core.fingerprint_store import Fingerprint, FingerprintStore, video_cache_key
from core.frame_sampler import FrameSampler, SampledFrame
from core.hash_codec import HashCodec
from core.similarity import SimilarityComparator, get_comparator

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheckResult:
    """Outcome of one duplicate check"""
    identity: str
    key: str
    is_duplicate: bool
    similarity: float
    cache_hit: bool
    frame_count: int

    def to_dict(self) -> dict:
        return {
            'identity': self.identity,
            'key': self.key,
            'is_duplicate': self.is_duplicate,
            'similarity': self.similarity,
            'cache_hit': self.cache_hit,
            'frame_count': self.frame_count,
        }


class FingerprintEngine:
    """
    Builds video fingerprints and detects near-duplicates against the cache

    Every collaborator is passed in; the engine itself holds no mutable
    state, so one instance may serve concurrent calls for different videos.

    Duplicate check protocol for a video identity:

    1. Look up the cached fingerprint under the identity's key.
    2. On a hit, regenerate the fingerprint (refreshing the cache) and
       score the cached one against it; duplicate iff the score reaches
       the duplicate threshold.
    3. On a miss, generate and store a fingerprint; never a duplicate.

    Checking an unmodified video twice therefore flags it as a duplicate
    of itself.
    """

    def __init__(self,
                 store: FingerprintStore,
                 sampler: FrameSampler = None,
                 codec: HashCodec = None,
                 comparator: SimilarityComparator = None,
                 config: SystemConfig = None):
        self.config = config or SystemConfig()
        self.store = store
        self.sampler = sampler or FrameSampler(
            interval_seconds=self.config.sampling.interval_seconds
        )
        self.codec = codec or HashCodec(
            algorithm=self.config.hashing.algorithm,
            hash_size=self.config.hashing.hash_size,
            max_dimension=self.config.hashing.max_dimension,
        )
        self.comparator = comparator or self._default_comparator()

        self.duplicate_threshold = self.config.similarity.duplicate_threshold
        self.fingerprint_ttl = timedelta(seconds=self.config.cache.fingerprint_ttl_seconds)
        self.key_prefix = self.config.cache.key_prefix

    @classmethod
    def from_config(cls, config: SystemConfig, store: FingerprintStore,
                    sampler: FrameSampler = None) -> 'FingerprintEngine':
        return cls(store=store, sampler=sampler, config=config)

    def _default_comparator(self) -> SimilarityComparator:
        similarity = self.config.similarity
        if similarity.strategy == 'string':
            return get_comparator('string', tolerance=similarity.string_tolerance)
        return get_comparator(similarity.strategy,
                              frame_threshold=similarity.frame_threshold,
                              codec=self.codec)

    def cache_key(self, identity: str) -> str:
        return video_cache_key(identity, self.key_prefix)

    # Fingerprint generation

    def build_fingerprint(self, identity: str, max_frames: int = None) -> Fingerprint:
        """
        Sample and hash a video without touching the cache

        Frames that fail to decode or hash are skipped. Raises
        GenerationError only when the video cannot be opened.
        """
        try:
            frames = self.sampler.sample(identity, max_frames=max_frames)
        except OpenError as e:
            raise GenerationError(identity, e) from e

        hashes = self._hash_frames(frames, identity)

        if not hashes:
            logger.warning("No frames could be hashed for %s", identity)

        return Fingerprint.create(hashes)

    def generate_fingerprint(self, identity: str) -> List[str]:
        """Build a fingerprint and store it under the video's cache key"""
        fingerprint = self._generate_and_store(identity)
        return list(fingerprint.hashes)

    def _generate_and_store(self, identity: str) -> Fingerprint:
        fingerprint = self.build_fingerprint(identity)
        key = self.cache_key(identity)
        try:
            self.store.set(key, fingerprint, self.fingerprint_ttl)
        except StoreError as e:
            raise StoreError(f"{e.message} for {identity}", key) from e

        logger.info("Stored fingerprint for %s: %d frame hashes under %s",
                    identity, len(fingerprint), key)
        return fingerprint

    def _hash_frames(self, frames: Iterable[SampledFrame], identity: str) -> List[str]:
        """Hash sampled frames in batches, preserving temporal order"""
        progress = tqdm(frames, desc="Hashing frames", unit="frame",
                        disable=not self.config.show_progress, leave=False)

        n_workers = max(1, self.config.n_workers)
        batch_size = max(1, self.config.hash_batch_size)
        hashed = {}

        if n_workers == 1:
            for frame in progress:
                self._hash_into(frame, hashed, identity)
        else:
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                batch = []
                for frame in progress:
                    batch.append(frame)
                    if len(batch) >= batch_size:
                        self._hash_batch(executor, batch, hashed, identity)
                        batch = []
                if batch:
                    self._hash_batch(executor, batch, hashed, identity)

        return [hashed[index] for index in sorted(hashed)]

    def _hash_batch(self, executor: ThreadPoolExecutor, batch: List[SampledFrame],
                    hashed: Dict[int, str], identity: str):
        list(executor.map(lambda f: self._hash_into(f, hashed, identity), batch))

    def _hash_into(self, frame: SampledFrame, hashed: Dict[int, str], identity: str):
        try:
            hashed[frame.index] = self.codec.hash(frame.image)
        except HashError as e:
            logger.debug("Skipping frame %d of %s: %s", frame.index, identity, e)

    # Duplicate detection

    def check_for_duplicate(self, identity: str) -> bool:
        """Whether this video is a near-duplicate of its cached fingerprint"""
        return self.check(identity).is_duplicate

    def check(self, identity: str) -> DuplicateCheckResult:
        """Run the duplicate check protocol and report the details"""
        key = self.cache_key(identity)

        existing = self.store.get(key)

        if existing is None:
            fingerprint = self._generate_and_store(identity)
            logger.info("New video %s processed and fingerprint saved", identity)
            return DuplicateCheckResult(
                identity=identity,
                key=key,
                is_duplicate=False,
                similarity=0.0,
                cache_hit=False,
                frame_count=len(fingerprint),
            )

        quick_frames = self.config.quick_check_frames
        if quick_frames:
            # Partial path: compare a fresh prefix without refreshing the cache
            fresh = self.build_fingerprint(identity, max_frames=quick_frames)
            similarity = self.comparator.compare(fresh.hashes, existing.hashes)
        else:
            fresh = self._generate_and_store(identity)
            similarity = self.comparator.compare(existing.hashes, fresh.hashes)

        is_duplicate = self.is_duplicate_score(similarity)

        logger.info("Checked %s against cache: similarity=%.3f duplicate=%s",
                    identity, similarity, is_duplicate)

        return DuplicateCheckResult(
            identity=identity,
            key=key,
            is_duplicate=is_duplicate,
            similarity=similarity,
            cache_hit=True,
            frame_count=len(fresh),
        )

    def is_duplicate_score(self, similarity: float) -> bool:
        return similarity >= self.duplicate_threshold

    def check_many(self, identities: Iterable[str]) -> Dict[str, DuplicateCheckResult]:
        """Check several distinct videos in parallel"""
        unique = list(dict.fromkeys(identities))

        with ThreadPoolExecutor(max_workers=max(1, self.config.n_workers)) as executor:
            results = list(executor.map(self.check, unique))

        return dict(zip(unique, results))

    def compare_videos(self, identity_a: str, identity_b: str) -> float:
        """Similarity of two videos, using the first as reference; no cache writes"""
        fingerprint_a = self.build_fingerprint(identity_a)
        fingerprint_b = self.build_fingerprint(identity_b)
        return self.comparator.compare(fingerprint_a.hashes, fingerprint_b.hashes)

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Remove cached fingerprints; defaults to every video key"""
        return self.store.invalidate_pattern(pattern or self.key_prefix + '*')
