"""Fitness tracker client: water intake, workouts, settings and reminders over Supabase."""
