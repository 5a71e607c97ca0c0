QUERY_DAILY_REPORTS_DESCRIPTION = """
Return daily reports (optionally filtered by date or employeeId).
Results are ordered by report date, newest first, at most 50 rows.
Requires the read_daily permission.
"""

INSERT_DAILY_REPORT_DESCRIPTION = """
Create a new daily report.

Parameters:
- reportDate: the working day, ISO format (YYYY-MM-DD)
- employeeId: numeric employee id
- workPlan / workResult / issues / nextPlan: free text
Requires the write_daily permission.
"""

QUERY_INSPECTION_LOGS_DESCRIPTION = """
List inspections (optionally filtered by equipmentId or date).
Results are ordered by inspection date, newest first, at most 50 rows.
Requires the read_daily permission.
"""

INSERT_INSPECTION_LOG_DESCRIPTION = """
Add an inspection record.

Parameters:
- equipmentId: numeric equipment id
- inspectBy: employee id of the inspector
- inspectDate: ISO date of the inspection
- result / notes: free text
- nextSchedule: ISO date of the next planned inspection
Requires the write_daily permission.
"""

QUERY_ANOMALY_REPORTS_DESCRIPTION = """
Fetch anomalies (optionally filtered by equipmentId or since date).
"since" keeps anomalies that occurred at or after the given timestamp.
Results are ordered by occurrence time, newest first, at most 50 rows.
Requires the read_daily permission.
"""

INSERT_ANOMALY_REPORT_DESCRIPTION = """
Log a new anomaly.
The occurrence time is recorded by the server at insertion; it cannot be supplied.
Requires the write_daily permission.
"""

WHO_AM_I_DESCRIPTION = "Debug: show auth context"
