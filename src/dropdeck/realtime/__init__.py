from dropdeck.realtime.session import DashboardSession

__all__ = ["DashboardSession"]
