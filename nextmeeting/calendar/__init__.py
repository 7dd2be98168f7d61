"""iCalendar parsing: records, date-times, recurrence and attendees."""
