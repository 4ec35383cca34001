"""Rental lifecycle core.

Submission, approval, resource assignment, return/backup processing and the
expiry scanner. Every operation receives a RentalContext explicitly; nothing
in this package reads module-level singletons.
"""
