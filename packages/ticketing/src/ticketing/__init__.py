"""
Ticketing

Events, registrations, QR tickets, check-in and registration exports.
"""
