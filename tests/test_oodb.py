# ==============================================
# Tests for ObjectDatabase
# ==============================================
#
# All scenarios run against an in-memory SQLite database
# through the FluidBean facade.
#
# class TestStoreAndLoad     → round trips, updates, missing rows
# class TestFluidSchema      → tables/columns created and widened
# class TestFinders          → find / find_one / find_all / count / batch
# class TestTrash            → trash, trash_all, wipe, nuke
# class TestParents          → parent beans, fetch_as
# class TestOwnLists         → own lists, alias, dependencies
# class TestProcessGroups    → list diff into additions / trashcan / residue
# class TestFrozenAndChilled → no DDL, missing schema raises
# class TestTransactions     → commit, rollback, nesting
# class TestQueryCacheFlow   → cache filled by reads, flushed by writes
# class TestEventsAndRawSQL  → listeners, raw SQL helpers
# ==============================================

import pytest

from fluidbean import Bean, FluidBean, SQLError, SQLState, ValidationError
from fluidbean.core.oodb import process_groups


def make_book(db, title="Dune", **values):
    book = db.dispense("book")
    book["title"] = title
    for key, value in values.items():
        book[key] = value
    return book


class TestStoreAndLoad:
    def test_round_trip(self, db):
        book = make_book(db, pages=412, available=True, published="1965-08-01")
        book_id = db.store(book)
        assert book_id == 1
        assert book.id == 1

        loaded = db.load("book", book_id)
        assert loaded.id == 1
        assert loaded["title"] == "Dune"
        assert loaded["pages"] == "412"
        assert loaded["available"] == "1"
        assert loaded["published"] == "1965-08-01"
        assert not loaded.is_tainted()

    def test_leading_zeros_survive(self, db):
        book = make_book(db, code="007")
        db.store(book)
        assert db.load("book", book.id)["code"] == "007"
        assert db.inspect("book")["code"] == "TEXT"

    def test_update(self, db):
        book_id = db.store(make_book(db))
        loaded = db.load("book", book_id)
        loaded["title"] = "Emma"
        assert db.store(loaded) == book_id
        assert db.load("book", book_id)["title"] == "Emma"
        assert db.count("book") == 1

    def test_missing_row_gives_empty_bean(self, db):
        db.store(make_book(db))
        missing = db.load("book", 99)
        assert missing.id == 0
        assert missing.type == "book"

    def test_missing_table_gives_empty_bean(self, db):
        assert db.load("ghost", 1).id == 0

    def test_empty_bean_can_be_stored(self, db):
        assert db.store(db.dispense("book")) == 1

    def test_dispense_many(self, db):
        beans = db.dispense("tag", 3)
        assert len(beans) == 3
        assert all(isinstance(bean, Bean) for bean in beans)
        with pytest.raises(ValidationError):
            db.dispense("tag", 0)

    def test_invalid_type(self, db):
        with pytest.raises(ValidationError):
            db.dispense("bad type")

    def test_store_rejects_non_beans(self, db):
        with pytest.raises(ValidationError):
            db.store({"title": "Dune"})

    def test_store_all(self, db):
        ids = db.store_all([make_book(db, "A"), make_book(db, "B")])
        assert ids == [1, 2]

    def test_fresh(self, db):
        book = make_book(db)
        db.store(book)
        book["title"] = "changed, not stored"
        assert book.fresh()["title"] == "Dune"

    def test_storing_unchanged_bean_runs_no_sql(self, db):
        book_id = db.store(make_book(db, pages=412))
        loaded = db.load("book", book_id)
        statements = []
        db.adapter.on("sql_exec", lambda event, adapter: statements.append(adapter.get_sql()))

        assert db.store(loaded) == book_id
        assert statements == []
        assert not loaded.has_changed("pages")


class TestRoundTrip:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "1"),
            (False, "0"),
            (7, "7"),
            (3000000000, "3000000000"),
            (3.25, "3.25"),
            ("Dune", "Dune"),
            ("x" * 70000, "x" * 70000),
            ("12345", "12345"),
            ("007", "007"),
        ],
    )
    def test_reloaded_bean_equals_stored_bean(self, db, value, expected):
        book = make_book(db, value=value)
        db.store(book)
        loaded = db.load("book", book.id)
        assert book["value"] == expected
        assert loaded["value"] == expected
        assert loaded.export() == book.export()
        assert not loaded.has_changed("value")

    def test_values_read_from_raw_sql_rows(self, db):
        db.store(make_book(db, pages=412))
        rows = db.get_all("SELECT * FROM book")
        assert db.oodb.convert_to_beans("book", rows)[0]["pages"] == "412"


class TestFluidSchema:
    def test_tables_and_columns_created(self, db):
        db.store(make_book(db, pages=10))
        assert db.inspect() == ["book"]
        assert db.inspect("book") == {"id": "INTEGER", "title": "TEXT", "pages": "INTEGER"}

    def test_column_widens_and_never_narrows(self, db):
        book = make_book(db, code=1)
        db.store(book)
        assert db.inspect("book")["code"] == "INTEGER"

        book["code"] = "old"
        db.store(book)
        assert db.inspect("book")["code"] == "TEXT"

        db.store(make_book(db, "Emma", code=2))
        assert db.inspect("book")["code"] == "TEXT"
        assert db.load("book", book.id)["code"] == "old"

    def test_widening_keeps_rows(self, db):
        db.store(make_book(db, "A", rating=1))
        db.store(make_book(db, "B", rating=2.5))
        assert db.inspect("book")["rating"] == "NUMERIC"
        assert sorted(b["title"] for b in db.find_all("book")) == ["A", "B"]

    def test_cast_meta(self, db):
        book = make_book(db, isbn=123)
        book.set_meta("cast.isbn", "text")
        db.store(book)
        assert db.inspect("book")["isbn"] == "TEXT"

    def test_camel_case_column(self, db):
        book = make_book(db)
        book["coverColor"] = "red"
        db.store(book)
        assert "cover_color" in db.inspect("book")


class TestFinders:
    @pytest.fixture
    def books(self, db):
        beans = [make_book(db, title, pages=pages) for title, pages in (("Dune", 412), ("Emma", 320), ("Ulysses", 730))]
        db.store_all(beans)
        return beans

    def test_find_by_conditions(self, db, books):
        found = db.find("book", {"title": ["Dune", "Emma"]})
        assert sorted(b["title"] for b in found) == ["Dune", "Emma"]

    def test_find_with_sql(self, db, books):
        found = db.find("book", None, " pages > ? ORDER BY pages", [400])
        assert [b["title"] for b in found] == ["Dune", "Ulysses"]

    def test_find_with_named_bindings(self, db, books):
        found = db.find("book", {"id": [1, 2, 3]}, " pages < :limit ", {":limit": 400})
        assert [b["title"] for b in found] == ["Emma"]

    def test_find_one_and_all(self, db, books):
        assert db.find_one("book", " title = ? ", ["Emma"])["pages"] == "320"
        assert db.find_one("book", " title = ? ", ["Nope"]) is None
        assert [b.id for b in db.find_all("book", " ORDER BY id DESC ")] == [3, 2, 1]

    def test_find_on_missing_table(self, db):
        assert db.find("ghost") == []

    def test_find_rejects_bad_conditions(self, db, books):
        with pytest.raises(ValidationError):
            db.find("book", ["title"])

    def test_count(self, db, books):
        assert db.count("book") == 3
        assert db.count("book", " pages > ? ", [400]) == 2
        assert db.count("ghost") == 0

    def test_batch_keeps_order(self, db, books):
        loaded = db.batch("book", [3, 1])
        assert [b["title"] for b in loaded] == ["Ulysses", "Dune"]
        assert db.batch("book", []) == []
        assert db.batch("ghost", [1]) == []


class TestTrash:
    def test_trash(self, db):
        book = make_book(db)
        db.store(book)
        assert db.trash(book) == 1
        assert book.id == 0
        assert book["title"] == "Dune"
        assert db.count("book") == 0

    def test_trash_unsaved_bean(self, db):
        assert db.trash(make_book(db)) == 0

    def test_trash_all(self, db):
        beans = [make_book(db, "A"), make_book(db, "B")]
        db.store_all(beans)
        assert db.trash_all(beans) == 2

    def test_wipe(self, db):
        db.store(make_book(db))
        assert db.wipe("book") is True
        assert db.count("book") == 0
        assert db.wipe("ghost") is False

    def test_nuke(self, db):
        db.store(make_book(db))
        db.nuke()
        assert db.inspect() == []


class TestParents:
    def test_parent_stored_first(self, db):
        page = db.dispense("page")
        page["text"] = "Chapter one"
        page["book"] = make_book(db)
        page_id = db.store(page)

        assert db.count("book") == 1
        loaded = db.load("page", page_id)
        assert loaded["book_id"] == "1"
        assert loaded["book"]["title"] == "Dune"

    def test_parent_is_detached_after_store(self, db):
        page = db.dispense("page")
        book = make_book(db)
        page["book"] = book
        db.store(page)
        assert "book" not in page
        assert page["book"] is book

    def test_fetch_as(self, db):
        person = db.dispense("person")
        person["name"] = "Herbert"
        book = make_book(db)
        book["author"] = person
        db.store(book)

        loaded = db.load("book", book.id)
        assert loaded.fetch_as("person").get("author")["name"] == "Herbert"

    def test_unset_parent_clears_link(self, db):
        page = db.dispense("page")
        page["book"] = make_book(db)
        db.store(page)
        loaded = db.load("page", page.id)
        loaded["book"] = None
        db.store(loaded)
        assert db.load("page", page.id)["book_id"] is None


class TestOwnLists:
    def store_book_with_pages(self, db, count=2):
        book = make_book(db)
        pages = []
        for number in range(1, count + 1):
            page = db.dispense("page")
            page["number"] = number
            pages.append(page)
        book["ownPage"] = pages
        db.store(book)
        return book

    def test_children_get_owner_id(self, db):
        book = self.store_book_with_pages(db)
        assert db.count("page", " book_id = ? ", [book.id]) == 2
        assert len(book["ownPage"]) == 2
        assert book.count_own("page") == 2

    def test_own_list_with_condition_and_sql(self, db):
        book = self.store_book_with_pages(db, 3)
        loaded = db.load("book", book.id)
        assert len(loaded.with_condition(" number > ? ", [1]).get("ownPage")) == 2
        assert loaded.with_sql(" ORDER BY number DESC ").get("ownPage")[0]["number"] == "3"

    def test_child_knows_its_owner(self, db):
        book = self.store_book_with_pages(db, 1)
        page = db.load("book", book.id)["ownPage"][0]
        assert page["book"]["title"] == "Dune"

    def test_removed_child_is_orphaned(self, db):
        book = self.store_book_with_pages(db)
        loaded = db.load("book", book.id)
        pages = loaded["ownPage"]
        removed = pages[1]
        loaded["ownPage"] = pages[:1]
        db.store(loaded)

        assert db.count("page") == 2
        assert db.load("page", removed.id)["book_id"] is None
        assert db.load("book", book.id).count_own("page") == 1

    def test_removed_dependent_child_is_trashed(self, db, config):
        config.schema.dependencies["page"] = ["book"]
        book = self.store_book_with_pages(db)
        loaded = db.load("book", book.id)
        loaded["ownPage"] = loaded["ownPage"][:1]
        db.store(loaded)
        assert db.count("page") == 1

    def test_dependent_children_cascade(self, db, config):
        config.schema.dependencies["page"] = ["book"]
        book = self.store_book_with_pages(db)
        db.trash(book)
        assert db.count("page") == 0

    def test_independent_children_survive_owner(self, db):
        book = self.store_book_with_pages(db)
        db.trash(book)
        assert db.count("page") == 2
        assert all(page["book_id"] is None for page in db.find_all("page"))

    def test_alias(self, db):
        teacher = db.dispense("person")
        teacher["name"] = "Ada"
        course = db.dispense("course")
        course["title"] = "Maths"
        teacher.alias("teacher")["ownCourse"] = [course]
        db.store(teacher)

        assert "teacher_id" in db.inspect("course")
        loaded = db.load("person", teacher.id)
        courses = loaded.alias("teacher").get("ownCourse")
        assert [c["title"] for c in courses] == ["Maths"]

    def test_link_helper(self, db):
        book = make_book(db)
        page = book.link("page", {"number": 7})
        db.store(book)
        assert page.id
        assert db.load("page", page.id)["book_id"] == str(book.id)


class TestProcessGroups:
    def test_diff(self):
        kept = Bean("page").import_row({"id": 1})
        gone = Bean("page").import_row({"id": 2})
        new = Bean("page")
        additions, trashcan, residue = process_groups([kept, gone], [Bean("page").import_row({"id": "1"}), new])
        assert additions == [new]
        assert trashcan == [gone]
        assert [bean.id for bean in residue] == ["1"]


class TestFrozenAndChilled:
    def test_frozen_store_needs_table(self, frozen_db):
        with pytest.raises(SQLError) as info:
            frozen_db.store(make_book(frozen_db))
        assert info.value.state == SQLState.NO_SUCH_TABLE

    def test_frozen_load_does_not_tolerate_missing_table(self, frozen_db):
        with pytest.raises(SQLError):
            frozen_db.load("book", 1)
        assert frozen_db.count("book") == 0

    def test_freeze_after_fluid_work(self, db):
        book = make_book(db)
        db.store(book)
        db.freeze()
        assert db.is_frozen()

        book["isbn"] = "978"
        with pytest.raises(SQLError) as info:
            db.store(book)
        assert info.value.state == SQLState.NO_SUCH_COLUMN

        db.freeze(False)
        db.store(book)
        assert db.load("book", book.id)["isbn"] == "978"

    def test_frozen_existing_schema_works(self, db):
        db.store(make_book(db))
        db.freeze()
        assert db.store(make_book(db, "Emma")) == 2

    def test_chilled_types(self, db):
        db.freeze(["book"])
        assert not db.is_frozen()
        with pytest.raises(SQLError):
            db.store(make_book(db))
        page = db.dispense("page")
        page["number"] = 1
        assert db.store(page) == 1

    def test_nuke_refused_when_frozen(self, frozen_db):
        with pytest.raises(ValidationError):
            frozen_db.nuke()


class TestTransactions:
    def test_callback_commits(self, db):
        db.store(make_book(db))
        result = db.transaction(lambda tx: tx.store(make_book(tx, "Emma")))
        assert result == 2
        assert db.count("book") == 2

    def test_callback_failure_rolls_back(self, db):
        db.store(make_book(db))

        def work(tx):
            tx.store(make_book(tx, "Emma"))
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            db.transaction(work)
        assert db.count("book") == 1

    def test_nested_failure_rolls_back_outer(self, db):
        db.store(make_book(db))

        def inner(tx):
            tx.store(make_book(tx, "inner"))
            raise RuntimeError("abort")

        def outer(tx):
            tx.store(make_book(tx, "outer"))
            return tx.transaction(inner)

        with pytest.raises(RuntimeError):
            db.transaction(outer)
        assert [b["title"] for b in db.find_all("book")] == ["Dune"]

    def test_manual_rollback(self, db):
        db.store(make_book(db))
        db.begin()
        db.store(make_book(db, "Emma"))
        db.rollback()
        assert db.count("book") == 1

    def test_manual_commit(self, db):
        db.store(make_book(db))
        db.begin()
        db.store(make_book(db, "Emma"))
        db.commit()
        assert db.count("book") == 2

    def test_scope(self, db):
        db.store(make_book(db))
        with db.transaction_scope() as tx:
            tx.store(make_book(tx, "Emma"))
        assert db.count("book") == 2

    def test_widening_referenced_table_in_transaction_keeps_children(self, db, config):
        config.schema.dependencies["page"] = ["book"]
        book = make_book(db, rating=1)
        page = db.dispense("page")
        page["number"] = 1
        book["ownPage"] = [page]
        db.store(book)

        def widen(tx):
            loaded = tx.load("book", book.id)
            loaded["rating"] = "five stars"
            tx.store(loaded)

        with pytest.raises(SQLError):
            db.transaction(widen)
        assert db.count("page") == 1
        assert db.inspect("book")["rating"] == "INTEGER"

        db.transaction(lambda tx: tx.store(make_book(tx, "Emma", rating=2)))
        loaded = db.load("book", book.id)
        loaded["rating"] = "five stars"
        db.store(loaded)
        assert db.count("page") == 1
        assert db.load("book", book.id)["rating"] == "five stars"

    def test_callback_required(self, db):
        with pytest.raises(ValidationError):
            db.transaction("not callable")


class TestQueryCacheFlow:
    def test_reads_fill_writes_flush(self, db):
        db.store(make_book(db))
        cache = db.writer.cache
        db.find_all("book")
        assert cache.size() > 0
        db.exec("UPDATE book SET title = ?", ["Emma"])
        assert cache.size() == 0
        assert db.find_all("book")[0]["title"] == "Emma"

    def test_disabled_cache(self, config):
        config.query.use_cache = False
        db = FluidBean(dsn="sqlite://:memory:", config=config)
        db.store(make_book(db))
        db.find_all("book")
        assert db.writer.cache.size() == 0
        db.close()


class TestEventsAndRawSQL:
    def test_bean_events(self, db):
        events = []
        for name in ("dispense", "update", "after_update", "open", "delete", "after_delete"):
            db.on(name, lambda event, bean: events.append((event, bean.type)))
        book = make_book(db)
        db.store(book)
        db.load("book", book.id)
        db.trash(book)
        assert [event for event, _ in events] == [
            "dispense",
            "update",
            "after_update",
            "dispense",
            "open",
            "delete",
            "after_delete",
        ]

    def test_raw_sql(self, db):
        db.exec("CREATE TABLE note (id INTEGER PRIMARY KEY AUTOINCREMENT, body TEXT)")
        db.exec("INSERT INTO note (body) VALUES (?)", ["a"])
        assert db.get_insert_id() == 1
        db.exec("INSERT INTO note (body) VALUES (?)", ["b"])
        assert db.get_all("SELECT * FROM note ORDER BY id") == [
            {"id": 1, "body": "a"},
            {"id": 2, "body": "b"},
        ]
        assert db.get_row("SELECT body FROM note WHERE id = ?", [2]) == {"body": "b"}
        assert db.get_col("SELECT body FROM note ORDER BY id") == ["a", "b"]
        assert db.get_cell("SELECT COUNT(*) FROM note") == 2
        assert db.get_assoc("SELECT id, body FROM note") == {1: "a", 2: "b"}

    def test_raw_sql_errors_are_sql_errors(self, db):
        with pytest.raises(SQLError) as info:
            db.get_all("SELECT * FROM ghost")
        assert info.value.state == SQLState.NO_SUCH_TABLE

    def test_export(self, db):
        books = [make_book(db, "A"), make_book(db, "B")]
        db.store_all(books)
        assert db.export(books) == [{"id": 1, "title": "A"}, {"id": 2, "title": "B"}]
        assert db.export(books[0])["title"] == "A"
