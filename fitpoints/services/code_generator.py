"""
Verification code generator.

Codes are short enough to type at a staff terminal and drawn with a CSPRNG
so that pending codes cannot be guessed from earlier ones.
"""
import secrets
import string
from typing import Iterable, Optional

from ..utils.exceptions import CodeSpaceExhaustedError

DEFAULT_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 50


class CodeGenerator:
    """
    Draws fixed-length codes uniformly from a bounded alphabet.

    Usage:
        generator = CodeGenerator()
        code = generator.generate(exclude=pending_codes)
    """

    def __init__(
        self,
        length: int = DEFAULT_LENGTH,
        alphabet: str = DEFAULT_ALPHABET,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rng=None
    ):
        """
        Args:
            length: Number of characters per code
            alphabet: Characters codes are drawn from (normalized to upper case)
            max_attempts: Draws allowed before failing closed
            rng: Object with a `choice(seq)` method; defaults to the OS CSPRNG
        """
        alphabet = ''.join(dict.fromkeys(alphabet.upper()))
        if length < 1:
            raise ValueError('Code length must be at least 1')
        if len(alphabet) < 2:
            raise ValueError('Code alphabet needs at least 2 distinct characters')
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')

        self.length = length
        self.alphabet = alphabet
        self.max_attempts = max_attempts
        self._rng = rng or secrets.SystemRandom()

    @property
    def space_size(self) -> int:
        return len(self.alphabet) ** self.length

    @staticmethod
    def normalize(code: Optional[str]) -> str:
        """Canonical form used for storage and every comparison."""
        if code is None:
            return ''
        return ''.join(str(code).split()).upper()

    def draw(self) -> str:
        return ''.join(self._rng.choice(self.alphabet) for _ in range(self.length))

    def generate(self, exclude: Iterable[str] = ()) -> str:
        """
        Draw a code not present in `exclude`.

        Raises:
            CodeSpaceExhaustedError: No free code after max_attempts draws
        """
        taken = {self.normalize(c) for c in exclude}

        for _ in range(self.max_attempts):
            code = self.draw()
            if code not in taken:
                return code

        raise CodeSpaceExhaustedError(self.max_attempts)

    def is_well_formed(self, code: str) -> bool:
        """Cheap shape check before touching the database."""
        code = self.normalize(code)
        return len(code) == self.length and all(c in self.alphabet for c in code)
