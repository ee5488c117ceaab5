"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Sequence
from uuid import uuid4

from backend.domain.constraints import validate_snapshot
from backend.domain.models import (
    AgeBracket,
    QuoteSubmission,
    RoomTariff,
    RoomType,
    StaySnapshot,
    SubPeriod,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEMO_STAY_ID = "stay-summer-camp"


@dataclass(frozen=True)
class QuoteRecord:
    """Stored quote projection used by the export layer."""

    quote_id: str
    quote_number: str
    stay_id: str
    status: str
    first_name: str
    last_name: str
    email: str
    check_in: str
    check_out: str
    total_price: float
    has_undefined_pricing: bool
    created_at: str
    participants: dict[str, int] = field(default_factory=dict)
    room_type_ids: tuple[str, ...] = ()
    assigned_occupants: int = 0
    sub_period_ids: tuple[str, ...] = ()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Stays (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL DEFAULT '',
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        allow_partial_booking INTEGER NOT NULL DEFAULT 0
                            CHECK (allow_partial_booking IN (0,1)),
                        min_days INTEGER,
                        max_days INTEGER
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AgeBrackets (
                        id TEXT NOT NULL,
                        stay_id TEXT NOT NULL,
                        label TEXT NOT NULL,
                        min_age INTEGER,
                        max_age INTEGER,
                        sort_order INTEGER NOT NULL DEFAULT 0,
                        PRIMARY KEY (stay_id, id),
                        FOREIGN KEY (stay_id) REFERENCES Stays(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SubPeriods (
                        id TEXT NOT NULL,
                        stay_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        sort_order INTEGER NOT NULL DEFAULT 0,
                        PRIMARY KEY (stay_id, id),
                        FOREIGN KEY (stay_id) REFERENCES Stays(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomTypes (
                        id TEXT NOT NULL,
                        stay_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        PRIMARY KEY (stay_id, id),
                        FOREIGN KEY (stay_id) REFERENCES Stays(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomTariffs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        stay_id TEXT NOT NULL,
                        room_type_id TEXT NOT NULL,
                        age_bracket_id TEXT NOT NULL,
                        sub_period_id TEXT,
                        price REAL NOT NULL CHECK (price >= 0),
                        FOREIGN KEY (stay_id, room_type_id) REFERENCES RoomTypes(stay_id, id),
                        FOREIGN KEY (stay_id, age_bracket_id) REFERENCES AgeBrackets(stay_id, id),
                        FOREIGN KEY (stay_id, sub_period_id) REFERENCES SubPeriods(stay_id, id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Quotes (
                        id TEXT PRIMARY KEY,
                        quote_number TEXT NOT NULL,
                        stay_id TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'PENDING',
                        first_name TEXT NOT NULL,
                        last_name TEXT NOT NULL,
                        email TEXT NOT NULL,
                        phone TEXT NOT NULL,
                        check_in TEXT NOT NULL,
                        check_out TEXT NOT NULL,
                        special_requests TEXT,
                        total_price REAL NOT NULL DEFAULT 0,
                        has_undefined_pricing INTEGER NOT NULL DEFAULT 0,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (stay_id) REFERENCES Stays(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS QuoteParticipants (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        quote_id TEXT NOT NULL,
                        age_bracket_id TEXT NOT NULL,
                        count INTEGER NOT NULL CHECK (count > 0),
                        FOREIGN KEY (quote_id) REFERENCES Quotes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS QuoteRooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        quote_id TEXT NOT NULL,
                        room_type_id TEXT NOT NULL,
                        quantity INTEGER NOT NULL CHECK (quantity > 0),
                        FOREIGN KEY (quote_id) REFERENCES Quotes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS QuoteRoomOccupants (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        quote_room_id INTEGER NOT NULL,
                        age_bracket_id TEXT NOT NULL,
                        count INTEGER NOT NULL CHECK (count > 0),
                        FOREIGN KEY (quote_room_id) REFERENCES QuoteRooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS QuoteSubPeriods (
                        quote_id TEXT NOT NULL,
                        sub_period_id TEXT NOT NULL,
                        position INTEGER NOT NULL CHECK (position >= 0),
                        PRIMARY KEY (quote_id, sub_period_id),
                        FOREIGN KEY (quote_id) REFERENCES Quotes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_tariffs_room_bracket_period
                    ON RoomTariffs(stay_id, room_type_id, age_bracket_id, IFNULL(sub_period_id, ''));
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_quotes_stay_created
                    ON Quotes(stay_id, created_at);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def save_stay_snapshot(self, snapshot: StaySnapshot) -> None:
        """Insert a full stay catalog. Existing ids are rejected by SQLite."""
        validate_snapshot(snapshot)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Stays (
                        id, name, start_date, end_date,
                        allow_partial_booking, min_days, max_days
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        snapshot.stay_id,
                        snapshot.name,
                        snapshot.start_date.isoformat(),
                        snapshot.end_date.isoformat(),
                        int(snapshot.allow_partial_booking),
                        snapshot.min_days,
                        snapshot.max_days,
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO AgeBrackets (id, stay_id, label, min_age, max_age, sort_order)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            bracket.bracket_id,
                            snapshot.stay_id,
                            bracket.label,
                            bracket.min_age,
                            bracket.max_age,
                            bracket.order,
                        )
                        for bracket in snapshot.age_brackets
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO SubPeriods (id, stay_id, name, start_date, end_date, sort_order)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            item.sub_period_id,
                            snapshot.stay_id,
                            item.name,
                            item.start_date.isoformat(),
                            item.end_date.isoformat(),
                            item.order,
                        )
                        for item in snapshot.sub_periods
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO RoomTypes (id, stay_id, name, capacity)
                    VALUES (?, ?, ?, ?);
                    """,
                    [
                        (room.room_type_id, snapshot.stay_id, room.name, room.capacity)
                        for room in snapshot.rooms
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO RoomTariffs (
                        stay_id, room_type_id, age_bracket_id, sub_period_id, price
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            snapshot.stay_id,
                            tariff.room_type_id,
                            tariff.age_bracket_id,
                            tariff.sub_period_id,
                            tariff.price,
                        )
                        for room in snapshot.rooms
                        for tariff in room.tariffs
                    ],
                )
                conn.commit()
            logger.info(
                "Stay stored | stay_id=%s | rooms=%s | sub_periods=%s",
                snapshot.stay_id,
                len(snapshot.rooms),
                len(snapshot.sub_periods),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Stay persistence failed: {exc}") from exc

    def seed_demo_stay_if_empty(self) -> None:
        """Seed one demo stay only when no stay exists yet."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Stays;")
            if int(cursor.fetchone()["count"]) > 0:
                logger.info("Stay catalog already present; skipping seed")
                return
        self.save_stay_snapshot(build_demo_stay())

    def load_stay_snapshot(self, stay_id: str) -> Optional[StaySnapshot]:
        """Assemble the immutable catalog of one stay, or None if unknown."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Stays WHERE id = ?;", (stay_id,))
            stay_row = cursor.fetchone()
            if stay_row is None:
                return None

            cursor.execute(
                """
                SELECT id, label, min_age, max_age, sort_order
                FROM AgeBrackets
                WHERE stay_id = ?
                ORDER BY sort_order ASC, id ASC;
                """,
                (stay_id,),
            )
            brackets = tuple(
                AgeBracket(
                    bracket_id=str(row["id"]),
                    label=str(row["label"]),
                    min_age=row["min_age"],
                    max_age=row["max_age"],
                    order=int(row["sort_order"]),
                )
                for row in cursor.fetchall()
            )

            sub_periods = tuple(self._fetch_sub_periods(cursor, stay_id))

            cursor.execute(
                """
                SELECT room_type_id, age_bracket_id, sub_period_id, price
                FROM RoomTariffs
                WHERE stay_id = ?
                ORDER BY id ASC;
                """,
                (stay_id,),
            )
            tariffs_by_room: dict[str, list[RoomTariff]] = {}
            for row in cursor.fetchall():
                tariffs_by_room.setdefault(str(row["room_type_id"]), []).append(
                    RoomTariff(
                        room_type_id=str(row["room_type_id"]),
                        age_bracket_id=str(row["age_bracket_id"]),
                        sub_period_id=row["sub_period_id"],
                        price=float(row["price"]),
                    )
                )

            cursor.execute(
                "SELECT id, name, capacity FROM RoomTypes WHERE stay_id = ? ORDER BY rowid ASC;",
                (stay_id,),
            )
            rooms = tuple(
                RoomType(
                    room_type_id=str(row["id"]),
                    name=str(row["name"]),
                    capacity=int(row["capacity"]),
                    tariffs=tuple(tariffs_by_room.get(str(row["id"]), ())),
                )
                for row in cursor.fetchall()
            )

        snapshot = StaySnapshot(
            stay_id=str(stay_row["id"]),
            name=str(stay_row["name"]),
            start_date=date.fromisoformat(str(stay_row["start_date"])),
            end_date=date.fromisoformat(str(stay_row["end_date"])),
            allow_partial_booking=bool(stay_row["allow_partial_booking"]),
            min_days=stay_row["min_days"],
            max_days=stay_row["max_days"],
            age_brackets=brackets,
            sub_periods=sub_periods,
            rooms=rooms,
        )
        validate_snapshot(snapshot)
        return snapshot

    @staticmethod
    def _fetch_sub_periods(cursor: sqlite3.Cursor, stay_id: str) -> list[SubPeriod]:
        cursor.execute(
            """
            SELECT id, name, start_date, end_date, sort_order
            FROM SubPeriods
            WHERE stay_id = ?
            ORDER BY sort_order ASC, start_date ASC;
            """,
            (stay_id,),
        )
        return [
            SubPeriod(
                sub_period_id=str(row["id"]),
                name=str(row["name"]),
                start_date=date.fromisoformat(str(row["start_date"])),
                end_date=date.fromisoformat(str(row["end_date"])),
                order=int(row["sort_order"]),
            )
            for row in cursor.fetchall()
        ]

    def list_sub_periods(self, stay_id: str) -> list[SubPeriod]:
        with self._connect() as conn:
            return self._fetch_sub_periods(conn.cursor(), stay_id)

    def save_sub_period_order(self, stay_id: str, sub_periods: Sequence[SubPeriod]) -> None:
        """Persist the ``order`` field of already validated sub-periods."""
        if not sub_periods:
            return
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                "UPDATE SubPeriods SET sort_order = ? WHERE stay_id = ? AND id = ?;",
                [(item.order, stay_id, item.sub_period_id) for item in sub_periods],
            )
            conn.commit()

    def replace_room_tariffs(
        self,
        stay_id: str,
        room_type_id: str,
        tariffs: Iterable[RoomTariff],
    ) -> int:
        """Swap every tariff of a room type in one transaction."""
        rows = [
            (stay_id, room_type_id, tariff.age_bracket_id, tariff.sub_period_id, tariff.price)
            for tariff in tariffs
        ]
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "DELETE FROM RoomTariffs WHERE stay_id = ? AND room_type_id = ?;",
                    (stay_id, room_type_id),
                )
                cursor.executemany(
                    """
                    INSERT INTO RoomTariffs (
                        stay_id, room_type_id, age_bracket_id, sub_period_id, price
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    rows,
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Tariff update failed: {exc}") from exc
        logger.info(
            "Tariffs replaced | stay_id=%s | room_type_id=%s | count=%s",
            stay_id,
            room_type_id,
            len(rows),
        )
        return len(rows)

    def save_quote(
        self,
        submission: QuoteSubmission,
        quote_number: str,
        status: str,
        total_price: float,
        has_undefined_pricing: bool,
    ) -> str:
        """Insert a submitted quote with its participants and rooms; return its id."""
        quote_id = uuid4().hex
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Quotes (
                        id, quote_number, stay_id, status,
                        first_name, last_name, email, phone,
                        check_in, check_out, special_requests,
                        total_price, has_undefined_pricing
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        quote_id,
                        quote_number,
                        submission.stay_id,
                        status,
                        submission.first_name,
                        submission.last_name,
                        submission.email,
                        submission.phone,
                        submission.check_in,
                        submission.check_out,
                        submission.special_requests,
                        total_price,
                        int(has_undefined_pricing),
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO QuoteParticipants (quote_id, age_bracket_id, count)
                    VALUES (?, ?, ?);
                    """,
                    [(quote_id, item.age_range_id, item.count) for item in submission.participants],
                )
                cursor.executemany(
                    """
                    INSERT INTO QuoteSubPeriods (quote_id, sub_period_id, position)
                    VALUES (?, ?, ?);
                    """,
                    [
                        (quote_id, sub_period_id, position)
                        for position, sub_period_id in enumerate(submission.selected_sub_period_ids)
                    ],
                )
                for room in submission.rooms:
                    cursor.execute(
                        """
                        INSERT INTO QuoteRooms (quote_id, room_type_id, quantity)
                        VALUES (?, ?, ?);
                        """,
                        (quote_id, room.room_id, room.quantity),
                    )
                    quote_room_id = int(cursor.lastrowid)
                    cursor.executemany(
                        """
                        INSERT INTO QuoteRoomOccupants (quote_room_id, age_bracket_id, count)
                        VALUES (?, ?, ?);
                        """,
                        [(quote_room_id, item.age_range_id, item.count) for item in room.occupants],
                    )
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Quote persistence failed: {exc}") from exc
        return quote_id

    def list_quotes(self, stay_id: Optional[str] = None) -> list[QuoteRecord]:
        """Return stored quotes, oldest first, optionally for one stay."""
        with self._connect() as conn:
            cursor = conn.cursor()
            if stay_id is None:
                cursor.execute("SELECT * FROM Quotes ORDER BY created_at ASC, rowid ASC;")
            else:
                cursor.execute(
                    "SELECT * FROM Quotes WHERE stay_id = ? ORDER BY created_at ASC, rowid ASC;",
                    (stay_id,),
                )
            quote_rows = cursor.fetchall()

            cursor.execute("SELECT quote_id, age_bracket_id, count FROM QuoteParticipants ORDER BY id;")
            participants: dict[str, dict[str, int]] = {}
            for row in cursor.fetchall():
                participants.setdefault(str(row["quote_id"]), {})[str(row["age_bracket_id"])] = int(
                    row["count"]
                )

            cursor.execute(
                """
                SELECT qr.quote_id, qr.room_type_id, COALESCE(SUM(o.count), 0) AS occupants
                FROM QuoteRooms AS qr
                LEFT JOIN QuoteRoomOccupants AS o ON o.quote_room_id = qr.id
                GROUP BY qr.id
                ORDER BY qr.id ASC;
                """
            )
            rooms: dict[str, list[str]] = {}
            occupants: dict[str, int] = {}
            for row in cursor.fetchall():
                quote_id = str(row["quote_id"])
                rooms.setdefault(quote_id, []).append(str(row["room_type_id"]))
                occupants[quote_id] = occupants.get(quote_id, 0) + int(row["occupants"])

            cursor.execute(
                "SELECT quote_id, sub_period_id FROM QuoteSubPeriods ORDER BY quote_id, position;"
            )
            sub_periods: dict[str, list[str]] = {}
            for row in cursor.fetchall():
                sub_periods.setdefault(str(row["quote_id"]), []).append(str(row["sub_period_id"]))

        return [
            QuoteRecord(
                quote_id=str(row["id"]),
                quote_number=str(row["quote_number"]),
                stay_id=str(row["stay_id"]),
                status=str(row["status"]),
                first_name=str(row["first_name"]),
                last_name=str(row["last_name"]),
                email=str(row["email"]),
                check_in=str(row["check_in"]),
                check_out=str(row["check_out"]),
                total_price=float(row["total_price"]),
                has_undefined_pricing=bool(row["has_undefined_pricing"]),
                created_at=str(row["created_at"]),
                participants=participants.get(str(row["id"]), {}),
                room_type_ids=tuple(rooms.get(str(row["id"]), ())),
                assigned_occupants=occupants.get(str(row["id"]), 0),
                sub_period_ids=tuple(sub_periods.get(str(row["id"]), ())),
            )
            for row in quote_rows
        ]

    def count_quotes(self) -> int:
        """Return persisted quote count for diagnostics and tests."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Quotes;")
            return int(cursor.fetchone()["count"])

    def get_quote_status(self, quote_id: str) -> Optional[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT status FROM Quotes WHERE id = ?;", (quote_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return str(row["status"])


def build_demo_stay() -> StaySnapshot:
    """Two-week summer stay with per-week tariffs and a gap in dorm pricing."""
    brackets = (
        AgeBracket("adult", "Adults", min_age=18, order=0),
        AgeBracket("child", "Children", min_age=4, max_age=17, order=1),
        AgeBracket("baby", "Babies", min_age=0, max_age=3, order=2),
    )
    sub_periods = (
        SubPeriod("week-1", "Week 1", date(2027, 7, 3), date(2027, 7, 10), order=0),
        SubPeriod("week-2", "Week 2", date(2027, 7, 10), date(2027, 7, 17), order=1),
    )

    def tariffs(room_type_id: str, rows: Iterable[tuple[str, Optional[str], float]]) -> tuple[RoomTariff, ...]:
        return tuple(
            RoomTariff(room_type_id, bracket_id, sub_period_id, price)
            for bracket_id, sub_period_id, price in rows
        )

    rooms = (
        RoomType(
            "double",
            "Double room",
            2,
            tariffs(
                "double",
                [
                    ("adult", None, 320.0),
                    ("child", None, 220.0),
                    ("baby", None, 0.0),
                    ("adult", "week-1", 300.0),
                    ("adult", "week-2", 340.0),
                ],
            ),
        ),
        RoomType(
            "family",
            "Family room",
            4,
            tariffs(
                "family",
                [
                    ("adult", None, 290.0),
                    ("child", None, 190.0),
                    ("baby", None, 0.0),
                ],
            ),
        ),
        RoomType("dorm", "Dormitory", 6, tariffs("dorm", [("adult", None, 180.0)])),
    )
    return StaySnapshot(
        stay_id=DEMO_STAY_ID,
        name="Summer camp 2027",
        start_date=date(2027, 7, 3),
        end_date=date(2027, 7, 17),
        allow_partial_booking=True,
        min_days=7,
        max_days=14,
        age_brackets=brackets,
        sub_periods=sub_periods,
        rooms=rooms,
    )
