"""HTTP API for PlaneTrack."""
