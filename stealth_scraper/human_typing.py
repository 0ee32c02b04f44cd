"""Human-like keystroke pacing for login forms"""

import random
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class TypingConfig:
    """Key delay distribution (milliseconds)"""

    mean_delay_ms: float = 110.0
    std_delay_ms: float = 35.0
    min_delay_ms: float = 40.0
    max_delay_ms: float = 320.0

    # Longer pause after punctuation and the "@" in email addresses
    pause_chars: str = ".,;:!?@"
    pause_multiplier: float = 2.0

    # Hesitation before the first key once the field is focused
    focus_pause_ms: float = 250.0


class HumanTyping:
    """
    Generates per-character delays from a clamped Gaussian distribution and
    types through the page keyboard one key at a time.
    """

    def __init__(self, config: Optional[TypingConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or TypingConfig()
        self.rng = rng or random.Random()

    def key_delays(self, text: str) -> List[float]:
        """Delay in ms to wait before each character of ``text``"""
        delays = []
        prev_char = None
        for char in text:
            delays.append(self._key_delay(prev_char))
            prev_char = char
        return delays

    def _key_delay(self, prev_char: Optional[str]) -> float:
        cfg = self.config
        delay = self.rng.gauss(cfg.mean_delay_ms, cfg.std_delay_ms)
        delay = max(cfg.min_delay_ms, min(delay, cfg.max_delay_ms))
        if prev_char is not None and prev_char in cfg.pause_chars:
            delay *= cfg.pause_multiplier
        return delay

    async def type_into(self, page, element, text: str) -> None:
        """
        Focus ``element`` and type ``text`` with human pacing.

        The field is cleared first so a retry never appends to stale input.
        """
        await element.click()
        await element.fill("")
        await page.wait_for_timeout(self.config.focus_pause_ms)

        for char, delay in zip(text, self.key_delays(text)):
            await page.wait_for_timeout(delay)
            await page.keyboard.type(char)
