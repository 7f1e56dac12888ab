"""Billing application of the hospital backend.

Stays and their billed periods, payments, legally authorised invoice
ranges and the invoices issued against payments.
"""
