"""FitTrack fitness-tracking backend.

This package exposes the FastAPI application together with the service,
repository and model modules behind it. Accounts, logged workouts and saved
plans live in a relational database; the exercise log and diet plans are
stored as documents in a second database.
"""
