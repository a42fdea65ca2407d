"""
Static O-1 evidence categories, qualification bands and letter commitment levels.

Category order is significant: it drives the order of `criteria_met` and of
the evidence summary.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CategoryDefinition:
    key: str
    name: str
    description: str
    examples: tuple[str, ...]
    max_score: int = 25
    threshold: int = 10


CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        key="awards",
        name="Awards",
        description="Nationally or internationally recognized prizes or awards for excellence",
        examples=(
            "Best Paper Award at major conference",
            "Industry excellence award",
            "National/international competition winner",
        ),
    ),
    CategoryDefinition(
        key="memberships",
        name="Memberships",
        description="Membership in associations requiring outstanding achievements",
        examples=(
            "ACM Fellow",
            "IEEE Senior Member",
            "Invitation-only professional groups",
        ),
    ),
    CategoryDefinition(
        key="published_material",
        name="Published Material",
        description="Published material about you in professional/major media",
        examples=(
            "News articles about your work",
            "MIT Technology Review feature",
            "VentureBeat profile",
        ),
    ),
    CategoryDefinition(
        key="judging",
        name="Judging",
        description="Participation as a judge of others' work in the field",
        examples=(
            "Conference paper reviewer",
            "Grant review panel member",
            "Competition judge",
        ),
    ),
    CategoryDefinition(
        key="original_contributions",
        name="Original Contributions",
        description="Original contributions of major significance in the field",
        examples=(
            "Patents",
            "Novel algorithms/methods",
            "Industry-adopted innovations",
        ),
    ),
    CategoryDefinition(
        key="scholarly_articles",
        name="Scholarly Articles",
        description="Authorship of scholarly articles in professional journals",
        examples=(
            "Peer-reviewed publications",
            "Conference papers",
            "Citations in the field",
        ),
    ),
    CategoryDefinition(
        key="critical_role",
        name="Critical Role",
        description="Employment in a critical or essential capacity for distinguished organizations",
        examples=(
            "Senior/Lead position at Fortune 500",
            "Key technical role at prominent startup",
            "Essential team leadership",
        ),
    ),
    CategoryDefinition(
        key="high_salary",
        name="High Salary",
        description="High salary or remuneration compared to others in the field",
        examples=(
            "Top 10% salary in field",
            "Documented above-market compensation",
            "Significant equity grants",
        ),
    ),
)

CATEGORY_KEYS: tuple[str, ...] = tuple(c.key for c in CATEGORIES)
_BY_KEY = {c.key: c for c in CATEGORIES}

MAX_OVERALL_SCORE = 100

# (min score, status, label), checked top-down.
_BANDS: tuple[tuple[int, str, str], ...] = (
    (80, "ready_to_file", "Exceptional"),
    (70, "ready_to_file", "Ready to File"),
    (50, "strong_candidate", "Strong Candidate"),
    (40, "profile_building", "Profile Building"),
    (0, "early_stage", "Early Stage"),
)


def get_category(key: str | None) -> CategoryDefinition | None:
    if not key:
        return None
    return _BY_KEY.get(key)


def qualification_status(score: int) -> tuple[str, str]:
    """Map an overall score to its (status, label) band."""
    for minimum, status, label in _BANDS:
        if score >= minimum:
            return status, label
    return _BANDS[-1][1], _BANDS[-1][2]


@dataclass(frozen=True)
class CommitmentLevel:
    key: str
    name: str
    description: str
    language: str


# Ordered from weakest to strongest commitment.
COMMITMENT_LEVELS: tuple[CommitmentLevel, ...] = (
    CommitmentLevel(
        key="exploratory_interest",
        name="Exploratory Interest",
        description="Lowest commitment - expressing initial interest",
        language=(
            "We are interested in exploring the possibility of engaging {name} for a position as {title}. "
            "While we have not made a final determination, we believe {name}'s qualifications warrant "
            "serious consideration for this role."
        ),
    ),
    CommitmentLevel(
        key="intent_to_engage",
        name="Intent to Engage",
        description="Genuine interest in engaging the candidate",
        language=(
            "We have a genuine interest in engaging {name} as a {title}. Based on our review of {name}'s "
            "qualifications and experience, we intend to pursue discussions regarding potential employment, "
            "contingent upon {name}'s ability to obtain appropriate work authorization."
        ),
    ),
    CommitmentLevel(
        key="conditional_offer",
        name="Conditional Offer",
        description="Intent to offer, subject to visa approval",
        language=(
            "We intend to offer {name} employment as a {title}, subject to {name}'s obtaining O-1 visa "
            "approval. Upon approval of the visa petition, we are prepared to offer an annual salary in the "
            "range of {salary_range}, commensurate with {name}'s extraordinary abilities and the market rate "
            "for such positions."
        ),
    ),
    CommitmentLevel(
        key="firm_commitment",
        name="Firm Commitment",
        description="Strong commitment to immediately engage upon approval",
        language=(
            "We are prepared to immediately engage {name} as a {title} upon approval of their O-1 visa "
            "petition. We are offering an annual compensation package in the range of {salary_range}. This "
            "position is available immediately, and we are committed to sponsoring {name}'s visa application."
        ),
    ),
    CommitmentLevel(
        key="offer_extended",
        name="Offer Extended",
        description="Highest commitment - formal offer already made",
        language=(
            "We have extended a formal offer of employment to {name} for the position of {title} at an "
            "annual salary of {salary_range}. This offer is contingent only upon {name}'s obtaining O-1 visa "
            "approval. We fully support {name}'s visa petition and confirm our commitment to employ {name} "
            "in this capacity."
        ),
    ),
)

COMMITMENT_LEVEL_KEYS: tuple[str, ...] = tuple(c.key for c in COMMITMENT_LEVELS)
_COMMITMENT_BY_KEY = {c.key: c for c in COMMITMENT_LEVELS}


def get_commitment_level(key: str | None) -> CommitmentLevel | None:
    if not key:
        return None
    return _COMMITMENT_BY_KEY.get(key)

