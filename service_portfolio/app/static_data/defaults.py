"""
Built-in content used when neither the API nor a snapshot is available.
"""

DEFAULT_PROJECTS = [
    {
        "_id": "default-1",
        "title": "Vendora",
        "description": (
            "An eCommerce storefront template for brands that value quality, "
            "elegance, and customer experience."
        ),
        "technologies": ["NextJs", "NodeJS", "MongoDb", "Typescript", "TailwindCSS"],
        "imageUrl": "https://images.unsplash.com/photo-1556742049-0cfed4f6a45d?w=800&h=400&fit=crop&auto=format",
        "githubUrl": "https://github.com/example/vendora",
        "liveUrl": "https://vendora.example.com",
        "featured": True,
        "challenge": "Modern businesses struggle with creating compelling eCommerce experiences.",
        "solution": "A storefront template built on Next.js with TypeScript.",
        "impact": "Faster page loads through static rendering and image optimization.",
        "duration": "3 months",
        "team": "Solo Developer",
    }
]

DEFAULT_CONTACT = {
    "_id": "default-contact",
    "email": "hello@example.com",
    "phone": "",
    "location": "India",
    "linkedin": "https://linkedin.com/in/example",
    "github": "https://github.com/example",
    "twitter": "https://twitter.com/example",
    "resume": "",
}

DEFAULT_RESUME = {
    "hasResume": False,
    "resumeUrl": None,
}
