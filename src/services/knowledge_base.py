from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
from datetime import datetime
from src.core.logging import get_plain_logger
from src.database.seed import INITIAL_KNOWLEDGE
from src.database.store import Collection, RecordStore
from src.models.records import KnowledgeEntry, KnowledgeSource, new_record_id, utcnow

logger = get_plain_logger(__name__)

DEFAULT_STOP_WORDS = frozenset({
    'the', 'are', 'your', 'what', 'where', 'how', 'can', 'do', 'does',
    'is', 'at', 'to', 'of', 'glamour', 'salon',
})

# Each group is bidirectional: any member pulls in all the others
DEFAULT_SYNONYM_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ('price', 'cost', 'pricing', 'fee', 'charge', 'rate'),
    ('color', 'coloring', 'colour', 'colouring'),
    ('hair', 'haircut', 'hairstyle', 'haircutting'),
    ('appointment', 'booking', 'reservation', 'schedule'),
    ('hours', 'time', 'schedule', 'open', 'closed'),
    ('location', 'address', 'where', 'find'),
    ('services', 'service', 'treatments', 'offerings'),
)

EXACT_MATCH_BONUS = 100
CATEGORY_BONUS = 50
KEYWORD_WEIGHT = 20
PARTIAL_WEIGHT = 5
LEARNED_BONUS = 10

PUNCTUATION = '?.,!;:"\'()'


def build_synonym_table(groups) -> Dict[str, Tuple[str, ...]]:
    """Map every word to the other members of each group it belongs to"""
    table: Dict[str, List[str]] = {}
    for group in groups:
        for word in group:
            related = table.setdefault(word, [])
            for other in group:
                if other != word and other not in related:
                    related.append(other)
    return {word: tuple(related) for word, related in table.items()}


@dataclass(frozen=True)
class ResolverConfig:
    """Static matching tables, injected once at construction"""
    stop_words: FrozenSet[str] = DEFAULT_STOP_WORDS
    synonyms: Dict[str, Tuple[str, ...]] = field(
        default_factory=lambda: build_synonym_table(DEFAULT_SYNONYM_GROUPS)
    )
    min_token_length: int = 4
    substring_match_enabled: bool = True


class KnowledgeResolver:
    """
    Decides whether a free-text question is already known

    Keyword and synonym scoring over the stored entries. The best score wins;
    on a tie the entry stored first wins, so results are reproducible.
    """

    def __init__(self, config: Optional[ResolverConfig] = None):
        self.config = config or ResolverConfig()

    @staticmethod
    def normalize(text: str) -> str:
        return (text or "").lower().strip()

    def tokenize(self, text: str) -> List[str]:
        tokens = []
        for word in self.normalize(text).split():
            word = word.strip(PUNCTUATION)
            if len(word) >= self.config.min_token_length and word not in self.config.stop_words:
                tokens.append(word)
        return tokens

    def expand(self, tokens: List[str]) -> List[str]:
        """Set union of the tokens and their synonyms, first-seen order"""
        expanded = list(dict.fromkeys(tokens))
        seen = set(expanded)
        for token in tokens:
            for synonym in self.config.synonyms.get(token, ()):
                if synonym not in seen:
                    seen.add(synonym)
                    expanded.append(synonym)
        return expanded

    def score(self, query: str, entry: KnowledgeEntry) -> int:
        normalized_query = self.normalize(query)
        return self._score(normalized_query, self.expand(self.tokenize(query)), entry)

    def _score(self, normalized_query: str, query_words: List[str], entry: KnowledgeEntry) -> int:
        normalized_question = self.normalize(entry.question)
        category = self.normalize(entry.category)
        score = 0

        if self.config.substring_match_enabled and normalized_query and (
            normalized_question in normalized_query or normalized_query in normalized_question
        ):
            score += EXACT_MATCH_BONUS

        if category and any(word in category for word in query_words):
            score += CATEGORY_BONUS

        question_words = set(self.tokenize(entry.question))
        exact = [word for word in query_words if word in question_words]
        partial = [
            word for word in query_words
            if word not in question_words
            and any(word in q or q in word for q in question_words)
        ]
        score += KEYWORD_WEIGHT * len(exact)
        score += PARTIAL_WEIGHT * len(partial)

        if entry.source == KnowledgeSource.LEARNED:
            score += LEARNED_BONUS

        return score

    def resolve(self, query: str, entries: List[KnowledgeEntry]) -> Optional[KnowledgeEntry]:
        normalized_query = self.normalize(query)
        query_words = self.expand(self.tokenize(query))

        best: Optional[KnowledgeEntry] = None
        best_score = 0
        for entry in entries:
            score = self._score(normalized_query, query_words, entry)
            # Strictly greater keeps the first-stored entry on ties
            if score > best_score:
                best, best_score = entry, score

        return best


class KnowledgeBaseService:
    """
    Knowledge base for AI agent learning

    Entries are never edited or deleted; supervisor answers are appended
    as learned entries.
    """

    def __init__(
        self,
        store: RecordStore,
        resolver: Optional[KnowledgeResolver] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.resolver = resolver or KnowledgeResolver()
        self.clock = clock

    def get_all_entries(self, source: Optional[KnowledgeSource] = None) -> List[KnowledgeEntry]:
        entries = [KnowledgeEntry.model_validate(r) for r in self.store.list(Collection.KNOWLEDGE)]
        if source is not None:
            entries = [e for e in entries if e.source == source]
        return entries

    async def search(self, query: str) -> Optional[KnowledgeEntry]:
        """
        Search for the best known answer to a question

        Args:
            query: Customer's question, as spoken

        Returns:
            The matching entry, or None when the question should be escalated
        """
        match = self.resolver.resolve(query, self.get_all_entries())
        if match:
            logger.info(f"✓ KB hit {match.id}: '{match.question}' → '{match.answer[:50]}...'")
        else:
            logger.info(f"✗ No KB match for: '{query}'")
        return match

    async def add_answer(
        self,
        question: str,
        answer: str,
        source: KnowledgeSource = KnowledgeSource.LEARNED,
        category: Optional[str] = None,
    ) -> KnowledgeEntry:
        """
        Append a new entry to the knowledge base

        Args:
            question: Question text, stored verbatim
            answer: Answer to give next time
            source: initial (seed/manual) or learned (supervisor)
            category: Optional topic (hours, pricing, services...)
        """
        now = self.clock()
        entry = KnowledgeEntry(
            id=new_record_id("kb"),
            question=question,
            answer=answer,
            category=category,
            source=source,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(Collection.KNOWLEDGE, entry.id, entry.model_dump(mode="json"))
        logger.info(f"✨ Added new KB entry {entry.id} [{source.value}]: {question}")
        return entry

    def has_learned_entry(self, question: str) -> bool:
        """Readiness check used to spot resolutions that never reached the KB"""
        return any(
            e.question == question for e in self.get_all_entries(KnowledgeSource.LEARNED)
        )

    def count(self) -> int:
        return self.store.count(Collection.KNOWLEDGE)

    async def seed_if_empty(self) -> int:
        """Load the initial salon answers into an empty knowledge base"""
        existing = self.count()
        if existing:
            logger.info(f"Knowledge base already has {existing} entries. Skipping seed.")
            return 0

        for item in INITIAL_KNOWLEDGE:
            await self.add_answer(
                item["question"],
                item["answer"],
                source=KnowledgeSource.INITIAL,
                category=item.get("category"),
            )
        logger.info(f"Seeded knowledge base with {len(INITIAL_KNOWLEDGE)} entries")
        return len(INITIAL_KNOWLEDGE)
