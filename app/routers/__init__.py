"""
DK Payroll - Routers Package

FastAPI route handlers.

Routers:
- payroll: Units, employees, advances, wage calculation, payroll batches,
  deduction rates, leave reconciliation
- attendance: Daily attendance records, attendance tally and bulk CSV upload
"""
