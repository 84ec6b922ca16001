"""サジェストエンジンが参照するデータベースモデル

スキーマ全体の管理は外部システムの責務。ここではクエリストア・履歴ストアとして
読み書きするテーブルのみをマッピングする。
"""

from datetime import UTC, date, datetime

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def utc_now() -> datetime:
    """タイムゾーンなしのUTC現在時刻"""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0の基底クラス"""

    pass


class User(Base):
    """ユーザーテーブル（ニックネームのみ参照）"""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)
    nickname: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("idx_users_nickname", "nickname"),)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, nickname={self.nickname})>"


class Block(Base):
    """ブロック（カタログエントリ）テーブル"""

    __tablename__ = "blocks"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)
    title: Mapped[str] = mapped_column(sa.Text, nullable=False)
    category: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    visibility: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default="public"
    )
    creator_id: Mapped[int | None] = mapped_column(
        sa.Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, nullable=False, server_default=func.now()
    )

    questions: Mapped[list["Question"]] = relationship(
        "Question", back_populates="block", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_blocks_visibility_creator", "visibility", "creator_id"),
        Index("idx_blocks_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Block(id={self.id}, title={self.title}, visibility={self.visibility})>"


class Question(Base):
    """問題テーブル（トピックタグのみ参照）"""

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)
    block_id: Mapped[int] = mapped_column(
        sa.Integer, ForeignKey("blocks.id", ondelete="CASCADE"), nullable=False
    )
    topic: Mapped[str | None] = mapped_column(sa.String(200), nullable=True)

    block: Mapped["Block"] = relationship("Block", back_populates="questions")

    __table_args__ = (
        Index("idx_questions_block", "block_id"),
        Index("idx_questions_topic", "topic"),
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, block_id={self.block_id}, topic={self.topic})>"


class SearchHistoryEntry(Base):
    """検索履歴テーブル

    (user_id, search_query, search_context, search_date) で1日1行。
    同日の再検索は search_count をインクリメントする。
    """

    __tablename__ = "user_search_history"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        sa.Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    search_query: Mapped[str] = mapped_column(sa.Text, nullable=False)
    search_context: Mapped[str] = mapped_column(
        sa.String(50), nullable=False, default="all"
    )
    search_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    search_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)
    results_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    # タイムスタンプ
    last_searched: Mapped[datetime] = mapped_column(
        sa.DateTime, nullable=False, server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "search_query",
            "search_context",
            "search_date",
            name="uq_search_history_user_query_day",
        ),
        Index("idx_search_history_user_query", "user_id", "search_query"),
        Index("idx_search_history_context", "search_context", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SearchHistoryEntry(user_id={self.user_id}, "
            f"query={self.search_query}, count={self.search_count})>"
        )
