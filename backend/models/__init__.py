from models.daily_time_record import DailyTimeRecord
from models.query import Query
from models.student import Student
from models.teacher import Teacher

__all__ = [
	"DailyTimeRecord",
	"Query",
	"Student",
	"Teacher",
]
