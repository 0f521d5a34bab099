"""Session sizing, splitting, orchestration, recovery and pattern learning core."""

__version__ = "0.1.0"
