"""Composable post search specifications.

Each specification answers the same question two ways: in memory
(`is_satisfied_by`) and as a SQLAlchemy predicate (`to_predicate`) for the
post queries. Combine them with ``&``, ``|`` and ``~``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import ColumnElement, and_, not_, or_

from app.db.models import Comment, Post, User
from app.domain.enums import SearchType


def _like_pattern(keyword: str) -> str:
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _contains(text: str | None, keyword: str) -> bool:
    return text is not None and keyword.lower() in text.lower()


class Specification(ABC):
    """A reusable post filter."""

    @abstractmethod
    def is_satisfied_by(self, post: Any) -> bool: ...

    @abstractmethod
    def to_predicate(self) -> ColumnElement[bool]: ...

    def __and__(self, other: Specification) -> Specification:
        return AndSpecification(self, other)

    def __or__(self, other: Specification) -> Specification:
        return OrSpecification(self, other)

    def __invert__(self) -> Specification:
        return NotSpecification(self)


class AndSpecification(Specification):
    def __init__(self, left: Specification, right: Specification) -> None:
        self.left = left
        self.right = right

    def is_satisfied_by(self, post: Any) -> bool:
        return self.left.is_satisfied_by(post) and self.right.is_satisfied_by(post)

    def to_predicate(self) -> ColumnElement[bool]:
        return and_(self.left.to_predicate(), self.right.to_predicate())


class OrSpecification(Specification):
    def __init__(self, left: Specification, right: Specification) -> None:
        self.left = left
        self.right = right

    def is_satisfied_by(self, post: Any) -> bool:
        return self.left.is_satisfied_by(post) or self.right.is_satisfied_by(post)

    def to_predicate(self) -> ColumnElement[bool]:
        return or_(self.left.to_predicate(), self.right.to_predicate())


class NotSpecification(Specification):
    def __init__(self, spec: Specification) -> None:
        self.spec = spec

    def is_satisfied_by(self, post: Any) -> bool:
        return not self.spec.is_satisfied_by(post)

    def to_predicate(self) -> ColumnElement[bool]:
        return not_(self.spec.to_predicate())


class _KeywordSpecification(Specification):
    def __init__(self, keyword: str) -> None:
        self.keyword = keyword
        self.pattern = _like_pattern(keyword)


class PostTitleSpecification(_KeywordSpecification):
    """Keyword appears in the post title."""

    def is_satisfied_by(self, post: Any) -> bool:
        return _contains(post.title, self.keyword)

    def to_predicate(self) -> ColumnElement[bool]:
        return Post.title.ilike(self.pattern, escape="\\")


class PostContentSpecification(_KeywordSpecification):
    """Keyword appears in the post body."""

    def is_satisfied_by(self, post: Any) -> bool:
        return _contains(post.content, self.keyword)

    def to_predicate(self) -> ColumnElement[bool]:
        return Post.content.ilike(self.pattern, escape="\\")


class AuthorEmailSpecification(_KeywordSpecification):
    """Keyword appears in the post author's email."""

    def is_satisfied_by(self, post: Any) -> bool:
        author = getattr(post, "author", None)
        return author is not None and _contains(author.email, self.keyword)

    def to_predicate(self) -> ColumnElement[bool]:
        return Post.author.has(User.email.ilike(self.pattern, escape="\\"))


class CommentContentSpecification(_KeywordSpecification):
    """Keyword appears in at least one comment on the post."""

    def is_satisfied_by(self, post: Any) -> bool:
        comments = getattr(post, "comments", None) or []
        return any(_contains(comment.content, self.keyword) for comment in comments)

    def to_predicate(self) -> ColumnElement[bool]:
        return Post.comments.any(Comment.content.ilike(self.pattern, escape="\\"))


class KeywordSpecification(Specification):
    """Keyword appears in the title, body, author email or any comment."""

    def __init__(self, keyword: str) -> None:
        self.keyword = keyword
        self._combined = (
            PostTitleSpecification(keyword)
            | PostContentSpecification(keyword)
            | AuthorEmailSpecification(keyword)
            | CommentContentSpecification(keyword)
        )

    def is_satisfied_by(self, post: Any) -> bool:
        return self._combined.is_satisfied_by(post)

    def to_predicate(self) -> ColumnElement[bool]:
        return self._combined.to_predicate()


_SPECIFICATIONS: dict[SearchType, type[Specification]] = {
    SearchType.ALL: KeywordSpecification,
    SearchType.TITLE: PostTitleSpecification,
    SearchType.CONTENT: PostContentSpecification,
    SearchType.AUTHOR_EMAIL: AuthorEmailSpecification,
    SearchType.COMMENT: CommentContentSpecification,
}


def specification_for(search_type: SearchType, keyword: str | None) -> Specification | None:
    """Build the filter for a search, or None when there is nothing to search for."""
    if keyword is None or not keyword.strip():
        return None
    return _SPECIFICATIONS[search_type](keyword.strip())
