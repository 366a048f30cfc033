"""
Built-in requirements templates seeded by `create_system_templates`.

Definitions use the same wire keys the API accepts, so they go through the same parser.
"""
from __future__ import annotations

_DOC_TYPES = ["pdf", "doc", "docx"]

SYSTEM_TEMPLATES: list[dict] = [
    {
        "name": "Graduate School Application",
        "description": "Standard requirements for graduate school applications including documents, test scores, and fees.",
        "category": "graduate",
        "tags": ["graduate", "masters", "phd"],
        "requirements": [
            {
                "requirementType": "document",
                "category": "academic",
                "name": "Academic Transcripts",
                "description": "Official transcripts from all previous institutions",
                "isRequired": True,
                "isOptional": False,
                "documentType": "transcript",
                "maxFileSize": 10,
                "allowedFileTypes": ["pdf"],
                "order": 1,
            },
            {
                "requirementType": "document",
                "category": "personal",
                "name": "Personal Statement",
                "description": "Statement of purpose explaining your academic and career goals",
                "isRequired": True,
                "isOptional": False,
                "documentType": "personal_statement",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "wordLimit": 1000,
                "order": 2,
            },
            {
                "requirementType": "document",
                "category": "professional",
                "name": "Curriculum Vitae/Resume",
                "description": "Detailed CV highlighting academic and professional experience",
                "isRequired": True,
                "isOptional": False,
                "documentType": "cv",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "order": 3,
            },
            {
                "requirementType": "document",
                "category": "professional",
                "name": "Letters of Recommendation",
                "description": "Academic or professional letters of recommendation",
                "isRequired": True,
                "isOptional": False,
                "documentType": "recommendation_letter",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "order": 4,
            },
            {
                "requirementType": "test_score",
                "category": "academic",
                "name": "GRE Scores",
                "description": "Graduate Record Examination scores",
                "isRequired": True,
                "isOptional": False,
                "testType": "gre",
                "minScore": 260,
                "maxScore": 340,
                "scoreFormat": "260-340 total score",
                "order": 5,
            },
            {
                "requirementType": "test_score",
                "category": "academic",
                "name": "TOEFL/IELTS Scores",
                "description": "English proficiency test scores (for international students)",
                "isRequired": False,
                "isOptional": True,
                "testType": "toefl",
                "minScore": 80,
                "maxScore": 120,
                "scoreFormat": "80+ total score",
                "order": 6,
            },
            {
                "requirementType": "fee",
                "category": "administrative",
                "name": "Application Fee",
                "description": "Non-refundable application processing fee",
                "isRequired": True,
                "isOptional": False,
                "applicationFeeAmount": 75,
                "applicationFeeCurrency": "USD",
                "applicationFeeDescription": "Standard application fee",
                "order": 7,
            },
            {
                "requirementType": "interview",
                "category": "professional",
                "name": "Admissions Interview",
                "description": "Interview with admissions committee or faculty",
                "isRequired": False,
                "isOptional": True,
                "interviewType": "virtual",
                "interviewDuration": 30,
                "interviewNotes": "May be required for competitive programs",
                "order": 8,
            },
        ],
    },
    {
        "name": "Undergraduate Application",
        "description": "Standard requirements for undergraduate college applications.",
        "category": "undergraduate",
        "tags": ["undergraduate", "college"],
        "requirements": [
            {
                "requirementType": "document",
                "category": "academic",
                "name": "High School Transcripts",
                "description": "Official high school transcripts",
                "isRequired": True,
                "isOptional": False,
                "documentType": "transcript",
                "maxFileSize": 10,
                "allowedFileTypes": ["pdf"],
                "order": 1,
            },
            {
                "requirementType": "document",
                "category": "personal",
                "name": "Personal Essay",
                "description": "Personal statement or college essay",
                "isRequired": True,
                "isOptional": False,
                "documentType": "personal_statement",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "wordLimit": 650,
                "order": 2,
            },
            {
                "requirementType": "test_score",
                "category": "academic",
                "name": "SAT/ACT Scores",
                "description": "Standardized test scores",
                "isRequired": True,
                "isOptional": False,
                "testType": "sat",
                "minScore": 1000,
                "maxScore": 1600,
                "scoreFormat": "1000+ total score",
                "order": 3,
            },
            {
                "requirementType": "document",
                "category": "professional",
                "name": "Letters of Recommendation",
                "description": "Teacher or counselor recommendations",
                "isRequired": True,
                "isOptional": False,
                "documentType": "recommendation_letter",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "order": 4,
            },
            {
                "requirementType": "fee",
                "category": "administrative",
                "name": "Application Fee",
                "description": "Non-refundable application processing fee",
                "isRequired": True,
                "isOptional": False,
                "applicationFeeAmount": 50,
                "applicationFeeCurrency": "USD",
                "applicationFeeDescription": "Standard application fee",
                "order": 5,
            },
        ],
    },
    {
        "name": "Scholarship Application",
        "description": "Standard requirements for scholarship applications.",
        "category": "scholarship",
        "tags": ["scholarship", "funding"],
        "requirements": [
            {
                "requirementType": "document",
                "category": "personal",
                "name": "Scholarship Essay",
                "description": "Essay addressing scholarship criteria and personal goals",
                "isRequired": True,
                "isOptional": False,
                "documentType": "personal_statement",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "wordLimit": 500,
                "order": 1,
            },
            {
                "requirementType": "document",
                "category": "academic",
                "name": "Academic Transcripts",
                "description": "Current academic transcripts",
                "isRequired": True,
                "isOptional": False,
                "documentType": "transcript",
                "maxFileSize": 10,
                "allowedFileTypes": ["pdf"],
                "order": 2,
            },
            {
                "requirementType": "document",
                "category": "professional",
                "name": "Letters of Recommendation",
                "description": "Academic or professional recommendations",
                "isRequired": True,
                "isOptional": False,
                "documentType": "recommendation_letter",
                "maxFileSize": 5,
                "allowedFileTypes": _DOC_TYPES,
                "order": 3,
            },
            {
                "requirementType": "document",
                "category": "financial",
                "name": "Financial Documents",
                "description": "Proof of financial need or income statements",
                "isRequired": False,
                "isOptional": True,
                "documentType": "financial_documents",
                "maxFileSize": 10,
                "allowedFileTypes": ["pdf"],
                "order": 4,
            },
            {
                "requirementType": "interview",
                "category": "professional",
                "name": "Scholarship Interview",
                "description": "Interview with scholarship committee",
                "isRequired": False,
                "isOptional": True,
                "interviewType": "virtual",
                "interviewDuration": 30,
                "interviewNotes": "May be required for competitive scholarships",
                "order": 5,
            },
        ],
    },
]
