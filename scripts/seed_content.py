"""
Seed the content catalog with the starter curriculum for classes 6-10.

Each unit gets one chapter of the same name and one video per explainer
topic. Subjects that already exist for a class (same name, case-insensitive)
are skipped, so the script can be re-run safely.

Usage:
    python scripts/seed_content.py [--class 8] [--video-base-url https://cdn.example.com/videos]
"""
import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select, func

from app.core.database import AsyncSessionLocal, Base, engine, new_id, utcnow
from app.models.subject import Subject
from app.models.unit import Unit
from app.models.chapter import Chapter
from app.models.video import Video

MATHEMATICS = ("Mathematics", "\U0001F4D0", "#6366F1")
SCIENCE = ("Science", "\U0001F9EA", "#10B981")
ENGLISH = ("English Literature", "\U0001F4DA", "#F59E0B")

# class -> [(subject, [(unit / chapter name, [explainer titles])])]
CURRICULUM = {
    6: [
        (MATHEMATICS, [
            ("Knowing Our Numbers", ["Number Systems", "Place Value", "Reading Large Numbers"]),
            ("Whole Numbers", ["Introduction to Whole Numbers", "Properties of Whole Numbers", "Number Line"]),
            ("Playing with Numbers", ["Factors and Multiples", "Prime Numbers", "Divisibility Rules"]),
            ("Basic Geometrical Ideas", ["Points and Lines", "Line Segments", "Angles"]),
            ("Understanding Elementary Shapes", ["2D Shapes", "3D Shapes", "Symmetry"]),
            ("Integers", ["Negative Numbers", "Integer Operations", "Number Line with Integers"]),
        ]),
        (SCIENCE, [
            ("Food: Where Does it Come From?", ["Plant and Animal Sources", "Food Chains", "Herbivores and Carnivores"]),
            ("Components of Food", ["Nutrients", "Balanced Diet", "Deficiency Diseases"]),
            ("Fibre to Fabric", ["Plant Fibres", "Animal Fibres", "Spinning and Weaving"]),
            ("Sorting Materials into Groups", ["Properties of Materials", "Hard and Soft Materials", "Transparent and Opaque"]),
            ("Separation of Substances", ["Handpicking", "Winnowing", "Sieving"]),
        ]),
        (ENGLISH, [
            ("A Tale of Two Birds", ["Story Analysis", "Character Study", "Moral Lessons"]),
            ("The Friendly Mongoose", ["Plot Development", "Theme Analysis", "Vocabulary Building"]),
            ("The Shepherd's Treasure", ["Wisdom Stories", "Cultural Values", "Reading Comprehension"]),
            ("The Old-Clock Shop", ["Descriptive Writing", "Setting Analysis", "Literary Devices"]),
            ("Tansen", ["Historical Stories", "Music and Culture", "Biography Writing"]),
        ]),
    ],
    7: [
        (MATHEMATICS, [
            ("Integers", ["Integer Operations", "Properties of Integers", "Applications"]),
            ("Fractions and Decimals", ["Fraction Operations", "Decimal Operations", "Converting Forms"]),
            ("Data Handling", ["Collecting Data", "Organizing Data", "Bar Graphs"]),
            ("Simple Equations", ["Solving Equations", "Word Problems", "Algebraic Expressions"]),
            ("Lines and Angles", ["Types of Lines", "Types of Angles", "Angle Relationships"]),
            ("The Triangle and its Properties", ["Triangle Types", "Triangle Properties", "Angle Sum Property"]),
        ]),
    ],
    8: [
        (MATHEMATICS, [
            ("Rational Numbers", ["Rational Number Properties", "Operations on Rationals", "Representation"]),
            ("Linear Equations in One Variable", ["Solving Linear Equations", "Applications", "Word Problems"]),
            ("Understanding Quadrilaterals", ["Types of Quadrilaterals", "Properties", "Angle Sum"]),
            ("Practical Geometry", ["Construction Techniques", "Using Instruments", "Geometric Drawings"]),
            ("Data Handling", ["Probability Basics", "Data Representation", "Statistics"]),
            ("Squares and Square Roots", ["Perfect Squares", "Finding Square Roots", "Applications"]),
        ]),
    ],
    9: [
        (MATHEMATICS, [
            ("Number Systems", ["Real Numbers", "Irrational Numbers", "Number Line"]),
            ("Polynomials", ["Polynomial Basics", "Operations", "Factorization"]),
            ("Coordinate Geometry", ["Cartesian Plane", "Plotting Points", "Distance Formula"]),
            ("Linear Equations in Two Variables", ["Solving Systems", "Graphical Method", "Applications"]),
            ("Introduction to Euclid's Geometry", ["Euclid's Axioms", "Geometric Proofs", "Definitions"]),
            ("Lines and Angles", ["Parallel Lines", "Transversals", "Angle Properties"]),
        ]),
    ],
    10: [
        (MATHEMATICS, [
            ("Real Numbers", ["Euclid's Division Lemma", "Fundamental Theorem", "Decimal Expansions"]),
            ("Polynomials", ["Polynomial Degrees", "Zeros of Polynomials", "Relationship between Zeros"]),
            ("Pair of Linear Equations in Two Variables", ["Graphical Method", "Algebraic Methods", "Word Problems"]),
            ("Quadratic Equations", ["Solving Methods", "Nature of Roots", "Applications"]),
            ("Arithmetic Progressions", ["AP Basics", "nth Term", "Sum of n Terms"]),
            ("Triangles", ["Similarity", "Congruence", "Pythagoras Theorem"]),
        ]),
    ],
}


def slugify(value: str) -> str:
    return "-".join("".join(c.lower() if c.isalnum() else " " for c in value).split())


async def subject_exists(session, name: str, grade: int) -> bool:
    result = await session.execute(
        select(Subject.id)
        .where(func.lower(Subject.name) == name.lower())
        .where(Subject.grade == grade)
    )
    return result.first() is not None


async def seed_subject(session, grade: int, subject_def: tuple, units: list, video_base_url: str) -> int:
    """
    Insert one subject with its units, chapters and videos.

    Returns:
        int: Number of videos created
    """
    name, icon, color = subject_def
    now = utcnow()
    subject = Subject(
        id=new_id(),
        name=name,
        description=f"{name} for Class {grade}",
        grade=grade,
        icon=icon,
        color=color,
        video_count=0,
        created_at=now,
        updated_at=now,
    )
    session.add(subject)

    videos = 0
    for position, (unit_name, explainers) in enumerate(units, start=1):
        unit = Unit(
            id=new_id(),
            subject_id=subject.id,
            name=unit_name,
            order=position,
            created_at=now,
            updated_at=now,
        )
        chapter = Chapter(
            id=new_id(),
            unit_id=unit.id,
            subject_id=subject.id,
            name=unit_name,
            order=1,
            created_at=now,
            updated_at=now,
        )
        session.add_all([unit, chapter])

        for video_position, title in enumerate(explainers, start=1):
            session.add(Video(
                id=new_id(),
                title=title,
                description=f"{title} ({unit_name})",
                url=f"{video_base_url}/class-{grade}/{slugify(name)}/{slugify(title)}.mp4",
                order=video_position,
                category=unit_name,
                tags=[slugify(name), f"class-{grade}"],
                chapter_id=chapter.id,
                unit_id=unit.id,
                subject_id=subject.id,
                subject_name=name,
                grade=grade,
                created_at=now,
                updated_at=now,
            ))
            videos += 1

    subject.video_count = videos
    return videos


async def seed(grades: list[int], video_base_url: str) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        for grade in grades:
            print(f"\n  [*] Class {grade}")
            for subject_def, units in CURRICULUM.get(grade, []):
                name = subject_def[0]
                if await subject_exists(session, name, grade):
                    print(f"  [=] {name} already exists, skipping")
                    continue
                videos = await seed_subject(session, grade, subject_def, units, video_base_url)
                await session.commit()
                print(f"  [+] {name}: {len(units)} units, {len(units)} chapters, {videos} videos")

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Brainac - seed the content catalog")
    parser.add_argument("--class", dest="grade", type=int, choices=sorted(CURRICULUM),
                        help="Seed a single class (default: all)")
    parser.add_argument("--video-base-url", default="https://videos.brainac.in",
                        help="Base URL used to build placeholder video URLs")
    args = parser.parse_args()

    grades = [args.grade] if args.grade else sorted(CURRICULUM)
    print("=" * 60)
    print("Seeding content catalog")
    print("=" * 60)
    asyncio.run(seed(grades, args.video_base_url.rstrip("/")))
    print("\n  [+] Done")


if __name__ == "__main__":
    main()
