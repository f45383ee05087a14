"""
Planwell - Personalized plan generation.

Plans:
- Meal: weekly diet plans
- Workout: training plans
- Rehab: physiotherapy / rehabilitation plans

Every plan is generated by an AI provider, optionally gated behind a
confirmed payment, and counted per user and category.
"""

__version__ = "1.0.0"
