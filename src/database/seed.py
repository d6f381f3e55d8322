"""
Initial salon knowledge the receptionist starts with

Run directly to seed the configured database:

    python -m src.database.seed
"""

import asyncio

INITIAL_KNOWLEDGE = [
    {
        "question": "What are your business hours?",
        "answer": "We are open Monday through Friday from 9 AM to 7 PM, and Saturday from 10 AM to 6 PM. We are closed on Sundays.",
        "category": "hours",
    },
    {
        "question": "Where are you located?",
        "answer": "We are located at 123 Beauty Street, San Francisco, CA 94102.",
        "category": "location",
    },
    {
        "question": "What services do you offer?",
        "answer": "We offer haircuts, hair coloring, highlights, balayage, hair styling, blowouts, keratin treatments, and hair extensions.",
        "category": "services",
    },
    {
        "question": "How much does a haircut cost?",
        "answer": "A standard haircut is $65. A haircut with a senior stylist is $85.",
        "category": "pricing",
    },
    {
        "question": "Do I need an appointment?",
        "answer": "Yes, we operate by appointment only. You can book by calling us or through our website.",
        "category": "booking",
    },
]


async def main():
    from src.core.dependencies import get_knowledge_base_service

    await get_knowledge_base_service().seed_if_empty()


if __name__ == "__main__":
    asyncio.run(main())
