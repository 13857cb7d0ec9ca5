"""
Short Code Generator

Produces the codes behind /s/<code> links.

Design Decisions:
- Word codes: three words drawn independently and uniformly, with
  replacement, from a fixed dictionary and joined with hyphens
  ("amber-coral-nova"); ~9 million combinations, easy to read aloud
- Collisions are resolved by probing the store before writing: up to 10 word
  draws, then a single random 8-hex-digit fallback code
- Legacy 6-character codes are still accepted (see core/validators.py) but
  are no longer minted
"""

import logging
import secrets
from typing import Awaitable, Callable, Optional, Sequence

from edgelink.core.exceptions import CodeGenerationExhaustedError

logger = logging.getLogger(__name__)

MAX_WORD_ATTEMPTS = 10
WORDS_PER_CODE = 3

# Lowercase, 3-8 letters, no duplicates
WORDS = (
    "acorn", "alpine", "amber", "anchor", "apple", "arbor", "arctic", "arrow",
    "aspen", "atlas", "aurora", "autumn", "azure", "badger", "bamboo", "banjo",
    "barley", "basil", "beacon", "beetle", "berry", "birch", "bison", "blaze",
    "bloom", "bluff", "bonsai", "bramble", "breeze", "brook", "cabin", "cactus",
    "canoe", "canyon", "caramel", "cascade", "cedar", "cherry", "cinder", "citrus",
    "clover", "cobalt", "cobra", "comet", "copper", "coral", "cosmos", "cotton",
    "coyote", "crane", "crater", "cricket", "crimson", "crystal", "cypress", "dahlia",
    "daisy", "delta", "desert", "dew", "dolphin", "dove", "dragon", "drift",
    "dune", "eagle", "ember", "emerald", "fable", "falcon", "fern", "fiesta",
    "finch", "fjord", "flame", "flint", "fox", "frost", "galaxy", "garnet",
    "gecko", "ginger", "glacier", "glade", "gopher", "grove", "harbor", "harvest",
    "hazel", "heron", "hickory", "honey", "horizon", "ibis", "iris", "island",
    "ivory", "jade", "jaguar", "jasmine", "juniper", "kayak", "kelp", "kestrel",
    "kiwi", "koala", "lagoon", "lantern", "lark", "lava", "lemon", "lilac",
    "lily", "llama", "lotus", "lunar", "lynx", "magnet", "mango", "maple",
    "marble", "marsh", "meadow", "mesa", "meteor", "mint", "mist", "monsoon",
    "moss", "nebula", "nectar", "nimbus", "nova", "oak", "oasis", "ocean",
    "olive", "onyx", "opal", "orbit", "orchid", "otter", "owl", "panda",
    "papaya", "pebble", "pepper", "pine", "pixel", "planet", "plum", "polar",
    "poppy", "prairie", "prism", "puffin", "quartz", "quasar", "quill", "rain",
    "raven", "reef", "ridge", "river", "robin", "ruby", "saffron", "sage",
    "salmon", "sapphire", "savanna", "sequoia", "shadow", "shell", "sierra", "silver",
    "sky", "sonnet", "sparrow", "spruce", "star", "stone", "summit", "sunset",
    "swan", "tango", "tapir", "thistle", "thunder", "tide", "tiger", "topaz",
    "tulip", "tundra", "umber", "valley", "velvet", "violet", "vortex", "walnut",
    "walrus", "willow", "wind", "wren", "yarrow", "yonder", "zebra", "zephyr",
    "zinnia",
)


class ShortCodeGenerator:
    """
    Generate unique short codes.

    Args:
        words: Dictionary to draw from
        rng: Object with a `choice(sequence)` method (defaults to SystemRandom)
        max_word_attempts: Word draws before falling back to a hex code
    """

    def __init__(
        self,
        words: Sequence[str] = WORDS,
        rng: Optional[object] = None,
        max_word_attempts: int = MAX_WORD_ATTEMPTS,
    ):
        self.words = tuple(words)
        self.rng = rng or secrets.SystemRandom()
        self.max_word_attempts = max_word_attempts

    def generate_word_code(self) -> str:
        return "-".join(self.rng.choice(self.words) for _ in range(WORDS_PER_CODE))

    def generate_fallback_code(self) -> str:
        return secrets.token_hex(4)

    async def generate_unique(self, is_taken: Callable[[str], Awaitable[bool]]) -> str:
        """
        Return a code that is not yet in use.

        Args:
            is_taken: Async probe, True when a code already has a mapping

        Raises:
            CodeGenerationExhaustedError: If every word draw and the fallback collided
        """
        for _ in range(self.max_word_attempts):
            candidate = self.generate_word_code()
            if not await is_taken(candidate):
                return candidate

        candidate = self.generate_fallback_code()
        logger.warning(
            f"{self.max_word_attempts} word codes collided, trying fallback code {candidate}"
        )
        if not await is_taken(candidate):
            return candidate

        raise CodeGenerationExhaustedError()
