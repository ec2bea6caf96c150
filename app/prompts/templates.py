"""
Structured, reusable, versioned prompt templates for LLM interactions.

Design Principles:
  1. Prompts are immutable dataclass objects; adapters never hold inline strings.
  2. Each template is versioned for traceability.
  3. Templates are adapter-agnostic: the same template works with Gemini, OpenAI, Ollama.
  4. Content truncation is handled here (not in adapters) with configurable limits.
  5. Every JSON-producing template spells out the exact shape it expects back.
"""

from dataclasses import dataclass, field

# ── Token Estimation ─────────────────────────────────────────────
# Rough estimate: 1 token ≈ 4 characters for English text.

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate token count from character length."""
    return len(text) // CHARS_PER_TOKEN


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate text to approximately max_tokens."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    truncated = text[:max_chars]
    # Cut at the last line break so catalog entries are never split
    last_break = truncated.rfind("\n")
    if last_break > max_chars * 0.8:
        truncated = truncated[:last_break]
    return truncated + "\n[Content truncated for processing]"


# ── Prompt Template ──────────────────────────────────────────────

@dataclass(frozen=True)
class PromptTemplate:
    """
    Immutable prompt template with system persona and user message.

    Attributes:
        name:              Unique identifier for logging and adapter dispatch.
        version:           Semantic version for prompt iteration tracking.
        system:            System message defining the LLM persona and constraints.
        user_template:     User message template with {variable} placeholders.
        max_tokens:        Maximum output tokens requested from the LLM.
        input_token_limit: Maximum tokens for input content (prevents context overflow).
        tags:              Metadata tags for categorization.
    """

    name: str
    version: str
    system: str
    user_template: str
    max_tokens: int = 1024
    input_token_limit: int = 4000
    tags: tuple[str, ...] = field(default_factory=tuple)

    def render(self, **kwargs: str) -> dict[str, str]:
        """Render template with variables, returning name + system + user messages."""
        return {
            "name": self.name,
            "system": self.system,
            "user": self.user_template.format(**kwargs),
        }

    def render_with_truncation(self, content_key: str, **kwargs: str) -> dict[str, str]:
        """Render template, truncating the specified content field to fit token limits."""
        if content_key in kwargs:
            kwargs[content_key] = truncate_to_tokens(
                kwargs[content_key], self.input_token_limit
            )
        return self.render(**kwargs)


JSON_ONLY = "Respond with valid JSON only. Do not wrap it in prose."


# ── Personalized Recommendations ─────────────────────────────────

RECOMMEND_FOR_READER = PromptTemplate(
    name="recommend_for_reader",
    version="1.0.0",
    system=(
        "You are a book recommendation expert for an online book-review community. "
        "You suggest books that fit a reader's history and taste.\n\n"
        "Guidelines:\n"
        "- Match their favorite genres and reading patterns.\n"
        "- Respect how generously they rate books.\n"
        "- Suggest diverse but relevant options, popular and lesser-known.\n"
        f"- {JSON_ONLY}"
    ),
    user_template=(
        "Suggest {limit} personalized book recommendations.\n\n"
        "Reader profile:\n"
        "- Total books reviewed: {review_count}\n"
        "- Favorite genres: {favorite_genres}\n"
        "- Average rating given: {average_rating}/5 (they tend to rate books {rating_tendency})\n\n"
        "Recent reading history:\n"
        "{history}\n\n"
        "Respond with a JSON object:\n"
        '{{"recommendations": [{{"title": "Book Title", "author": "Author Name", '
        '"reason": "Why this book fits", "genres": ["Genre"], "estimatedRating": 4.5}}], '
        '"explanation": "Brief explanation of the strategy"}}'
    ),
    max_tokens=1024,
    input_token_limit=2000,
    tags=("recommendation", "personalized"),
)


# ── Similar Books ────────────────────────────────────────────────

SIMILAR_BOOKS = PromptTemplate(
    name="similar_books",
    version="1.0.0",
    system=(
        "You are a literary expert who finds books similar to a given title. "
        "Similarity covers themes, genre, tone, writing style and target audience.\n\n"
        f"{JSON_ONLY}"
    ),
    user_template=(
        'Find {limit} books similar to "{title}" by {author}.\n\n'
        "Book details:\n"
        "- Genres: {genres}\n"
        "- Description: {description}\n\n"
        "Sample reviews:\n"
        "{reviews}\n\n"
        "Respond with JSON:\n"
        '{{"similarBooks": [{{"title": "Book Title", "author": "Author Name", '
        '"reason": "Why this book is similar", "similarityScore": 0.9}}], '
        '"explanation": "Brief explanation of similarity criteria"}}'
    ),
    max_tokens=768,
    input_token_limit=1500,
    tags=("recommendation", "similarity"),
)


# ── Query-Driven Recommendations ─────────────────────────────────

QUERY_RECOMMENDATIONS = PromptTemplate(
    name="query_recommendations",
    version="1.0.0",
    system=(
        "You are a book recommendation expert. You only recommend books that appear "
        "in the catalog you are given, using their exact title and author.\n\n"
        "Consider genre preferences, reading style, rating requirements, length, "
        "authors and any specific themes the reader mentions.\n\n"
        f"{JSON_ONLY}"
    ),
    user_template=(
        'Reader request: "{query}"\n\n'
        "Recommend exactly {limit} books from this catalog:\n"
        "{catalog}\n\n"
        "Respond with JSON:\n"
        '{{"recommendations": [{{"title": "Exact Book Title", "author": "Exact Author Name", '
        '"reason": "Why this book matches", "confidence": 0.9}}], '
        '"explanation": "Brief explanation of the selection"}}'
    ),
    max_tokens=768,
    input_token_limit=6000,
    tags=("recommendation", "query"),
)


# ── Review Sentiment Analysis ────────────────────────────────────

ANALYZE_REVIEW = PromptTemplate(
    name="analyze_review",
    version="1.0.0",
    system=(
        "You are a sentiment analysis expert specializing in book reviews. "
        "You classify sentiment, pick out themes and judge how useful a review is "
        "to other readers.\n\n"
        f"{JSON_ONLY}"
    ),
    user_template=(
        "Analyze this book review:\n\n"
        "--- REVIEW (START) ---\n"
        "{review_text}\n"
        "--- REVIEW (END) ---\n\n"
        "Respond with JSON:\n"
        '{{"sentiment": "positive|negative|neutral", "themes": ["theme"], '
        '"quality": 0.8, "summary": "Brief summary of the review"}}'
    ),
    max_tokens=256,
    input_token_limit=1500,
    tags=("sentiment", "reviews"),
)


# ── Book Description ─────────────────────────────────────────────

DESCRIBE_BOOK = PromptTemplate(
    name="describe_book",
    version="1.0.0",
    system=(
        "You write compelling, spoiler-free catalog descriptions for books. "
        "Keep it to one or two short paragraphs in a neutral, inviting tone."
    ),
    user_template=(
        'Write a book description for "{title}" by {author}.\n\n'
        "{existing_section}"
    ),
    max_tokens=400,
    input_token_limit=1000,
    tags=("description", "book"),
)


# ── Content Moderation ───────────────────────────────────────────

MODERATE_CONTENT = PromptTemplate(
    name="moderate_content",
    version="1.0.0",
    system=(
        "You are a content moderator for a book-review community. You check user "
        "content for hate speech, spam or promotion, offensive language, personal "
        "attacks, sexual content, and violence or threats.\n\n"
        f"{JSON_ONLY}"
    ),
    user_template=(
        "Analyze this {content_type} for inappropriate content:\n\n"
        "--- CONTENT (START) ---\n"
        "{content}\n"
        "--- CONTENT (END) ---\n\n"
        "Respond with JSON:\n"
        '{{"isAppropriate": true, "confidence": 0.9, "reasons": ["reason"], '
        '"suggestedAction": "approve|reject|edit"}}'
    ),
    max_tokens=256,
    input_token_limit=1500,
    tags=("moderation",),
)


# ── Rendering Helpers ────────────────────────────────────────────

def render_reader_prompt(profile: dict, limit: int) -> dict[str, str]:
    """
    Render the personalized recommendation prompt.

    Args:
        profile: Reader profile with 'review_count', 'favorite_genres',
                 'average_rating' and 'reviewed_books' (dicts with title,
                 author, genres, rating).
        limit:   Number of suggestions to ask for.
    """
    average = profile["average_rating"]
    if average >= 4:
        tendency = "highly"
    elif average >= 3:
        tendency = "moderately"
    else:
        tendency = "variably"

    history = "\n".join(
        f'- "{b["title"]}" by {b["author"]} ({", ".join(b["genres"]) or "uncategorized"})'
        f' - Rating: {b["rating"]}/5'
        for b in profile["reviewed_books"][:10]
    )

    return RECOMMEND_FOR_READER.render_with_truncation(
        content_key="history",
        limit=str(limit),
        review_count=str(profile["review_count"]),
        favorite_genres=", ".join(profile["favorite_genres"]) or "none yet",
        average_rating=f"{average:.1f}",
        rating_tendency=tendency,
        history=history or "- (no reviews yet)",
    )


def render_similar_books_prompt(book: dict, reviews: list[str], limit: int) -> dict[str, str]:
    """Render the similar-books prompt for a catalog entry and a few of its reviews."""
    return SIMILAR_BOOKS.render_with_truncation(
        content_key="reviews",
        limit=str(limit),
        title=book["title"],
        author=book["author"],
        genres=", ".join(book["genres"]) or "uncategorized",
        description=book.get("description") or "No description available",
        reviews="\n".join(f"- {r}" for r in reviews if r) or "- (no reviews yet)",
    )


def render_query_prompt(query: str, catalog: list[dict], limit: int) -> dict[str, str]:
    """Render the query-driven prompt. Catalog entries are dicts from the book service."""
    lines = "\n".join(
        f'- "{b["title"]}" by {b["author"]} ({", ".join(b["genres"]) or "uncategorized"})'
        f' - Rating: {b["average_rating"]}/5 ({b["total_reviews"]} reviews)'
        f' - {b.get("description") or "No description"}'
        for b in catalog
    )
    return QUERY_RECOMMENDATIONS.render_with_truncation(
        content_key="catalog",
        query=query,
        limit=str(limit),
        catalog=lines,
    )


def render_review_analysis_prompt(review_text: str) -> dict[str, str]:
    """Render the review sentiment prompt with safe truncation."""
    return ANALYZE_REVIEW.render_with_truncation(
        content_key="review_text",
        review_text=review_text,
    )


def render_description_prompt(
    title: str, author: str, existing: str | None = None
) -> dict[str, str]:
    """Render the book description prompt, asking for an improvement when one exists."""
    if existing:
        existing_section = f"Current description: {existing}\n\nPlease improve it."
    else:
        existing_section = "Create a new description."
    return DESCRIBE_BOOK.render(
        title=title, author=author, existing_section=existing_section
    )


def render_moderation_prompt(content: str, content_type: str) -> dict[str, str]:
    """Render the moderation prompt for a review or comment."""
    return MODERATE_CONTENT.render_with_truncation(
        content_key="content",
        content=content,
        content_type=content_type,
    )


# ── Prompt Registry ──────────────────────────────────────────────
# Central registry for discoverability, logging, and the AI status endpoint.

PROMPT_REGISTRY: dict[str, PromptTemplate] = {
    t.name: t
    for t in (
        RECOMMEND_FOR_READER,
        SIMILAR_BOOKS,
        QUERY_RECOMMENDATIONS,
        ANALYZE_REVIEW,
        DESCRIBE_BOOK,
        MODERATE_CONTENT,
    )
}


def get_prompt(name: str) -> PromptTemplate:
    """Retrieve a prompt template by name. Raises KeyError if not found."""
    if name not in PROMPT_REGISTRY:
        raise KeyError(
            f"Prompt '{name}' not found. Available: {list(PROMPT_REGISTRY.keys())}"
        )
    return PROMPT_REGISTRY[name]
