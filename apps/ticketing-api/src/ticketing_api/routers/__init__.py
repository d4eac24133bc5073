from ticketing_api.routers import campaigns, checkin, events, exports, functions

__all__ = ["campaigns", "checkin", "events", "exports", "functions"]
