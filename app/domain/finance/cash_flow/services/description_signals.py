"""
Description Signals - turns free-text transaction descriptions into booleans.

Keyword matching happens here and nowhere else; downstream stages consume
the DescriptionSignals flags instead of raw strings.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.core.unified_config import ExclusionConfig


@dataclass(frozen=True)
class DescriptionSignals:
    """Structured keyword flags extracted from one description"""
    # Exclusion
    is_adjustment: bool = False
    is_transfer: bool = False
    is_late_fee: bool = False

    # Income
    is_admin: bool = False
    is_advance: bool = False
    is_rent: bool = False
    is_deposit: bool = False
    is_utilities: bool = False

    # Investing / financing
    is_equipment: bool = False
    is_building: bool = False
    is_owner_contribution: bool = False
    is_loan: bool = False

    # Expense taxonomy, in priority order
    taxonomy: Optional[str] = None

    # Explicit references
    for_month: Optional[str] = None
    expense_refs: Tuple[str, ...] = ()


class DescriptionSignalExtractor:
    """
    Extracts DescriptionSignals from descriptions and account names.
    Uses keyword matching and pattern recognition.
    """

    # (bucket, pattern key) in priority order
    TAXONOMY_ORDER = [
        ("maintenance", "maintenance"),
        ("utilities", "utility_bills"),
        ("cleaning", "cleaning"),
        ("security", "security"),
        ("management", "management"),
    ]

    def __init__(self, config: Optional[ExclusionConfig] = None):
        self.config = config or ExclusionConfig()
        self._init_patterns()

    def _init_patterns(self):
        """Initialize regex patterns for description keywords"""
        self.patterns: Dict[str, List[str]] = {
            'adjustment': [re.escape(kw) for kw in self.config.adjustment_keywords],
            'transfer': [re.escape(kw) for kw in self.config.transfer_keywords],
            'late_fee': [
                r'\blate.*(?:fee|payment)',
                r'(?:fee|payment).*\blate',
            ],
            'admin': [
                r'payment\s+allocation:\s*admin',
                r'admin',
            ],
            'advance': [
                r'advance',
                r'prepaid',
                r'future',
            ],
            'rent': [
                r'payment\s+allocation:\s*rent',
                r'\brent',
            ],
            'deposit': [
                r'deposit',
            ],
            'utilities': [
                r'utilit',
            ],
            'equipment': [
                r'equipment',
                r'furniture',
                r'machinery',
            ],
            'building': [
                r'building',
                r'construction',
                r'property',
            ],
            'owner_contribution': [
                r'owner',
                r'contribution',
                r'capital',
            ],
            'loan': [
                r'loan',
                r'borrowing',
            ],
            # Expense taxonomy
            'utility_bills': [
                r'utilit',
                r'electricity',
                r'water',
                r'\bzesa\b',
                r'internet',
                r'wifi',
                r'\bgas\b',
            ],
            'maintenance': [
                r'maintenance',
                r'repair',
                r'plumb',
                r'electrical',
            ],
            'cleaning': [
                r'clean',
                r'sanitation',
                r'garbage',
                r'refuse',
            ],
            'security': [
                r'security',
                r'guard',
            ],
            'management': [
                r'management',
                r'manager',
                r'salar',
                r'wage',
            ],
        }

        # Compile patterns
        self.compiled_patterns = {
            key: [re.compile(p, re.IGNORECASE) for p in patterns]
            for key, patterns in self.patterns.items()
        }

        self.for_month_pattern = re.compile(r'\bfor\s+(\d{4})-(\d{1,2})\b', re.IGNORECASE)
        self.expense_ref_pattern = re.compile(r'\bEXP-[\w-]+', re.IGNORECASE)

    def extract(self, description: Optional[str]) -> DescriptionSignals:
        """
        Extract all signals from a description.

        Args:
            description: Free-text description, may be empty

        Returns:
            DescriptionSignals with every flag evaluated
        """
        text = description or ""
        if not text:
            return DescriptionSignals()

        return DescriptionSignals(
            is_adjustment=self._matches_pattern(text, 'adjustment'),
            is_transfer=self._matches_pattern(text, 'transfer'),
            is_late_fee=self._matches_pattern(text, 'late_fee'),
            is_admin=self._matches_pattern(text, 'admin'),
            is_advance=self._matches_pattern(text, 'advance'),
            is_rent=self._matches_pattern(text, 'rent'),
            is_deposit=self._matches_pattern(text, 'deposit'),
            is_utilities=self._matches_pattern(text, 'utilities'),
            is_equipment=self._matches_pattern(text, 'equipment'),
            is_building=self._matches_pattern(text, 'building'),
            is_owner_contribution=self._matches_pattern(text, 'owner_contribution'),
            is_loan=self._matches_pattern(text, 'loan'),
            taxonomy=self.taxonomy(text),
            for_month=self._for_month(text),
            expense_refs=tuple(m.group(0).upper() for m in self.expense_ref_pattern.finditer(text)),
        )

    def taxonomy(self, text: Optional[str]) -> Optional[str]:
        """First matching expense taxonomy bucket, or None"""
        if not text:
            return None
        for bucket, pattern_key in self.TAXONOMY_ORDER:
            if self._matches_pattern(text, pattern_key):
                return bucket
        return None

    def is_late_fee_text(self, text: Optional[str]) -> bool:
        return bool(text) and self._matches_pattern(text, 'late_fee')

    def _for_month(self, text: str) -> Optional[str]:
        match = self.for_month_pattern.search(text)
        if not match:
            return None
        month = int(match.group(2))
        if not 1 <= month <= 12:
            return None
        return f"{match.group(1)}-{month:02d}"

    def _matches_pattern(self, text: str, pattern_key: str) -> bool:
        """Check if text matches any pattern in the given category"""
        patterns = self.compiled_patterns.get(pattern_key, [])
        return any(p.search(text) for p in patterns)
