from sqlalchemy import Column, Integer, Float, String, DateTime, Date, Index

from moove.database import Base


class WorkoutSession(Base):
    """A completed workout, logged in the app or imported from Apple Health."""
    __tablename__ = "workout_sessions"

    id = Column(String, primary_key=True)  # uuid4
    name = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    completed_at = Column(DateTime, nullable=True)
    total_duration = Column(Integer, nullable=True)  # seconds
    overall_effort = Column(Integer, nullable=True)  # 1-10
    cardio_type = Column(String, nullable=True)  # run, walk, hike, trail-run
    distance = Column(Float, nullable=True)  # miles
    source = Column(String, nullable=True)  # "apple_health" for imports


class WorkoutBlock(Base):
    """One block (warmup, strength, cardio...) within a workout session."""
    __tablename__ = "workout_blocks"

    id = Column(String, primary_key=True)
    session_id = Column(String, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    type = Column(String, nullable=False)  # cardio, strength, conditioning, cooldown
    name = Column(String, nullable=False)

    __table_args__ = (
        Index("ix_workout_block_session_pos", "session_id", "position"),
    )


class BodyMetric(Base):
    """One day's body measurement snapshot."""
    __tablename__ = "body_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    weight = Column(Float, nullable=True)  # lb
    body_fat = Column(Float, nullable=True)  # percent
    source = Column(String, nullable=True)


class ActivityDay(Base):
    """Daily activity ring totals."""
    __tablename__ = "activity_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    active_energy = Column(Integer, nullable=True)  # kcal
    exercise_minutes = Column(Integer, nullable=True)
    stand_hours = Column(Integer, nullable=True)
