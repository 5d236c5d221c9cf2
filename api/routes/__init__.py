"""
Routes module for the Synexa API.

This module provides all API route definitions organized by functionality:
- routines: Routine CRUD, execution and run history
- devices: Device registration and direct commands
- recurrence: Recurrence rule parsing and occurrence preview
- reminders: Reminder creation, listing and due processing
"""
