"""OMOP CDM v5.4 catalog, prompts and example questions."""
from __future__ import annotations

from typing import Dict, List


OMOP_SYSTEM_PROMPT = """You are an expert in medical data analysis and the OMOP Common Data Model (CDM).
Your task is to convert natural language questions into SQL queries that follow OMOP CDM best practices.

Key OMOP Query Patterns:
1. Patient Demographics:
   - Always use person table for basic demographics
   - Join with observation_period for valid time periods

2. Clinical Events:
   - Join condition_occurrence/drug_exposure/procedure_occurrence with visit_occurrence when needed
   - Use concept_id mappings from the concept table for standardized terms

3. Temporal Analysis:
   - Use start_date and end_date fields for temporal relationships
   - Consider observation_period for patient coverage

4. Vocabulary Mappings:
   - Join with concept table for human-readable terms
   - Use concept_relationship for related concepts

5. Best Practices:
   - Use appropriate table joins based on person_id and visit_occurrence_id
   - Include proper WHERE clauses for valid records
   - Optimize joins and WHERE clause ordering
   - Use appropriate aggregation functions
   - Consider data type conversions when needed

Return the SQL query in a ```sql fenced block, followed by a short explanation.
Ensure the query follows OMOP conventions and is optimized for performance."""

OMOP_CHAT_SYSTEM_PROMPT = (
    "You are an expert assistant specializing in the OMOP Common Data Model "
    "(Observational Medical Outcomes Partnership). "
    "Your purpose is to help users understand and work with OMOP CDM concepts, tables, "
    "relationships, and best practices. "
    "You can explain OMOP data structures, help troubleshoot OMOP-related issues, and provide "
    "guidance on working with medical data in the OMOP format. "
    "You should focus exclusively on OMOP and related healthcare data topics. For non-OMOP related "
    "questions, politely explain that your expertise is limited to OMOP and healthcare data modeling."
)

# Insertion order is the order tables are listed in the prompt.
OMOP_TABLES_INFO: Dict[str, str] = {
    "person": (
        "Demographics of patients including gender, birth date, race and ethnicity. "
        "Primary key: person_id. Links to: observation_period, visit_occurrence, condition_occurrence"
    ),
    "observation_period": (
        "Time periods during which a person is observed in the database. "
        "Foreign key: person_id references person"
    ),
    "visit_occurrence": (
        "Records of encounters with healthcare providers or facilities. "
        "Foreign key: person_id references person"
    ),
    "condition_occurrence": (
        "Records of diagnoses or conditions. Foreign keys: person_id references person, "
        "visit_occurrence_id references visit_occurrence"
    ),
    "drug_exposure": (
        "Records of drugs prescribed, administered or dispensed. Foreign keys: person_id references "
        "person, visit_occurrence_id references visit_occurrence"
    ),
    "procedure_occurrence": (
        "Records of procedures or interventions performed. Foreign keys: person_id references person, "
        "visit_occurrence_id references visit_occurrence"
    ),
    "measurement": (
        "Records of clinical or laboratory measurements. Foreign keys: person_id references person, "
        "visit_occurrence_id references visit_occurrence"
    ),
    "observation": (
        "Clinical facts about a patient. Foreign keys: person_id references person, "
        "visit_occurrence_id references visit_occurrence"
    ),
    "death": "Records of patient death including cause of death. Foreign key: person_id references person",
    "concept": (
        "Standardized clinical terminology dictionary. Primary key: concept_id. "
        "Referenced by all clinical events for standard concepts"
    ),
    "vocabulary": (
        "Reference table of all vocabularies used. Primary key: vocabulary_id. "
        "Referenced by concept table"
    ),
}

OMOP_CORE_TABLES: List[Dict[str, str]] = [
    {"table": "PERSON", "description": "demographic information"},
    {"table": "OBSERVATION_PERIOD", "description": "time periods of observation"},
    {"table": "VISIT_OCCURRENCE", "description": "patient encounters"},
    {"table": "CONDITION_OCCURRENCE", "description": "diagnoses"},
    {"table": "DRUG_EXPOSURE", "description": "medication usage"},
    {"table": "PROCEDURE_OCCURRENCE", "description": "procedures"},
    {"table": "MEASUREMENT", "description": "lab tests and clinical measurements"},
    {"table": "OBSERVATION", "description": "observations that don't fit other domains"},
]

EXAMPLE_QUERIES: List[Dict[str, object]] = [
    {
        "category": "Patient Demographics",
        "queries": [
            "How many patients are in the database by gender?",
            "What is the age distribution of patients?",
            "Show me the racial distribution of patients over 65 years old",
        ],
    },
    {
        "category": "Conditions and Diagnoses",
        "queries": [
            "What are the top 10 most common diagnoses?",
            "How many patients have type 2 diabetes mellitus?",
            "Show me patients with hypertension grouped by age range",
        ],
    },
    {
        "category": "Medications",
        "queries": [
            "What antibiotics are most commonly prescribed?",
            "Show patients who received steroids in the last year",
            "List the top 5 medications prescribed to patients with heart failure",
        ],
    },
    {
        "category": "Temporal Analysis",
        "queries": [
            "What is the average length of hospital stays?",
            "Show monthly trend of flu diagnoses",
            "How many patients were diagnosed with pneumonia in the last 6 months?",
        ],
    },
    {
        "category": "Complex Patterns",
        "queries": [
            "Find patients with both diabetes and hypertension",
            "Show medications prescribed after heart surgery",
            "Identify patients who had an adverse reaction after taking amoxicillin",
        ],
    },
    {
        "category": "Comorbidities",
        "queries": [
            "What conditions commonly co-occur with rheumatoid arthritis?",
            "Show the most common comorbidities in elderly patients",
            "Find patients who have at least 3 chronic conditions",
        ],
    },
]

CONNECTION_TEST_PROMPT = "Convert this to SQL: How many patients are in the database?"


def describe_tables() -> str:
    return "\n".join(f"- {table}: {description}" for table, description in OMOP_TABLES_INFO.items())


def build_user_prompt(question: str) -> str:
    return (
        "Convert the following natural language question to a SQL query for an OMOP CDM database:\n"
        f'Question: "{question.strip()}"\n'
        "\n"
        "Available tables and their schemas:\n"
        f"{describe_tables()}\n"
        "\n"
        "Return a valid SQL query that follows OMOP CDM conventions and best practices. "
        "Then explain your reasoning.\n"
    )
