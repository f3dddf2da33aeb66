import random
from typing import List, Optional

from models.flashcard import Flashcard
from models.session import DeckState


class FlashcardDeck:
    """Browsing order, position and flip state over the session's flashcards."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self.state = DeckState()
        self._source_ids: List[str] = []

    @property
    def current_card(self) -> Optional[Flashcard]:
        if not self.state.cards:
            return None
        return self.state.cards[self.state.current_index]

    def sync(self, flashcards: List[Flashcard]):
        """Resets to session order whenever the session's flashcards change."""
        ids = [card.id for card in flashcards]
        if ids == self._source_ids:
            return
        self._source_ids = ids
        self.state = DeckState(cards=list(flashcards))

    def next(self) -> Optional[Flashcard]:
        if self.state.cards:
            self.state.current_index = (self.state.current_index + 1) % len(self.state.cards)
            self.state.is_flipped = False
        return self.current_card

    def previous(self) -> Optional[Flashcard]:
        if self.state.cards:
            total = len(self.state.cards)
            self.state.current_index = (self.state.current_index - 1 + total) % total
            self.state.is_flipped = False
        return self.current_card

    def flip(self) -> bool:
        if self.state.cards:
            self.state.is_flipped = not self.state.is_flipped
        return self.state.is_flipped

    def shuffle(self) -> bool:
        if len(self.state.cards) < 2:
            return False
        cards = list(self.state.cards)
        self._rng.shuffle(cards)
        self.state = DeckState(cards=cards)
        return True
