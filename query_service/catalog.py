"""
Bookstore catalog: the canned queries run against ``plp_bookstore.books``,
kept as data.  Order matters: the update and delete run before the
advanced queries, and the explain runs after the indexes exist.
"""

from typing import List, Tuple

from query_service.descriptors import (
    OperationDescriptor,
    aggregate,
    create_index,
    delete,
    explain,
    find,
    update,
)


def basic_crud() -> List[OperationDescriptor]:
    return [
        find("Fantasy books", {"genre": "Fantasy"}),
        find("Books published after 2000", {"published_year": {"$gt": 2000}}),
        find("Books by Suzanne Collins", {"author": "Suzanne Collins"}),
        update("Update price of '1984'", {"title": "1984"}, {"$set": {"price": 9.99}}),
        delete("Delete 'The Hobbit'", {"title": "The Hobbit"}),
    ]


def advanced_queries() -> List[OperationDescriptor]:
    return [
        find(
            "In stock and published after 2010",
            {"in_stock": True, "published_year": {"$gt": 2010}},
        ),
        find(
            "Projection (title, author, price only)",
            projection={"title": 1, "author": 1, "price": 1, "_id": 0},
        ),
        find("Sorted by price (ascending)", sort={"price": 1}),
        find("Pagination (page 1, 5 per page)", limit=5, skip=0),
    ]


def aggregations() -> List[OperationDescriptor]:
    return [
        aggregate("Average price by genre", [
            {"$group": {"_id": "$genre", "averagePrice": {"$avg": "$price"}}},
        ]),
        aggregate("Author with the most books", [
            {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
            {"$sort": {"bookCount": -1}},
            {"$limit": 1},
        ]),
        aggregate("Books grouped by decade", [
            {"$project": {
                "title": 1,
                "published_year": 1,
                "decade": {
                    "$subtract": ["$published_year", {"$mod": ["$published_year", 10]}],
                },
            }},
            {"$group": {"_id": "$decade", "count": {"$sum": 1}, "books": {"$push": "$title"}}},
            {"$sort": {"_id": 1}},
        ]),
    ]


def indexing() -> List[OperationDescriptor]:
    return [
        create_index("Index on title", {"title": 1}),
        create_index("Compound index on author and published_year", {"author": 1, "published_year": -1}),
        explain("Explain: books by Suzanne Collins", {"author": "Suzanne Collins"}),
    ]


def bookstore_sections() -> List[Tuple[str, List[OperationDescriptor]]]:
    """The catalog grouped under its console headings, in run order."""
    return [
        ("TASK 2: BASIC CRUD", basic_crud()),
        ("TASK 3: ADVANCED QUERIES", advanced_queries()),
        ("TASK 4: AGGREGATION", aggregations()),
        ("TASK 5: INDEXING", indexing()),
    ]


def bookstore_operations() -> List[OperationDescriptor]:
    """Every bookstore operation, in run order."""
    return [op for _, operations in bookstore_sections() for op in operations]
