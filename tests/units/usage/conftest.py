"""Shared test fixtures for usage-point analysis tests."""

import pytest

from usage_builders import create, read, write


@pytest.fixture
def thread_test01_program():
    """main creates t1 then t2; t2 reads d and conditionally writes g."""
    return {
        "file": "thread_test01.c",
        "main": "main",
        "functions": {
            "thread1": {"nodes": [write("d", 14), write("g", 15), write("c", 16)]},
            "thread2": {
                "nodes": [
                    {"id": "t2_g4", **write("g", 21)},
                    {"id": "t2_x", **write("x", 22)},
                    {"id": "t2_if", **read("d", 23)},
                    {"id": "t2_g2", **write("g", 24)},
                    {"id": "t2_exit", "op": "skip"},
                ],
                "edges": [["t2_g4", "t2_x"], ["t2_x", "t2_if"], ["t2_if", "t2_g2"],
                          ["t2_if", "t2_exit"], ["t2_g2", "t2_exit"]],
            },
            "main": {
                "nodes": [
                    write("g", 30),
                    create("t1", "thread1", 32),
                    write("d", 34),
                    write("c", 35),
                    write("g", 36),
                    write("x", 37),
                    create("t2", "thread2", 39),
                ]
            },
        },
    }


@pytest.fixture
def thread_test06_program(thread_test01_program):
    """Creation chain main -> t1 -> t3 -> t4."""
    program = thread_test01_program
    program["file"] = "thread_test06.c"
    program["functions"]["thread1"] = {
        "nodes": [write("d", 20), create("t3", "thread3", 21), write("g", 22), write("c", 23)]
    }
    program["functions"]["thread3"] = {"nodes": [create("t4", "thread4", 33)]}
    program["functions"]["thread4"] = {"nodes": [write("x", 37)]}
    return program


@pytest.fixture
def grandchild_program():
    """main forks t1 and writes x; t1 forks t3, which writes x."""
    return {
        "main": "main",
        "functions": {
            "thread1": {"nodes": [create("t3", "thread3", 3)]},
            "thread3": {"nodes": [write("x", 7)]},
            "main": {"nodes": [create("t1", "thread1", 10), write("x", 11)]},
        },
    }


@pytest.fixture
def joined_parent_program(grandchild_program):
    """main joins t1 before writing x; t3, forked by t1, is never joined."""
    program = grandchild_program
    program["functions"]["thread1"]["nodes"].append(write("x", 4))
    program["functions"]["main"]["nodes"].insert(1, {"op": "pthread_join", "thread": "t1", "line": 11})
    program["functions"]["main"]["nodes"][2]["line"] = 12
    return program


@pytest.fixture
def locked_program():
    """Two threads writing g under the same mutex."""
    body = {"nodes": [
        {"op": "pthread_mutex_lock", "lock": "m", "line": 5},
        write("g", 6),
        {"op": "pthread_mutex_unlock", "lock": "m", "line": 7},
    ]}
    return {
        "main": "main",
        "functions": {
            "worker1": body,
            "worker2": body,
            "main": {"nodes": [create("t1", "worker1", 10), create("t2", "worker2", 11)]},
        },
    }


@pytest.fixture
def aliased_lock_program():
    """t1 locks m1 and releases it through p, which may point to m1 or m2."""
    return {
        "main": "main",
        "aliases": {"p": ["m1", "m2"]},
        "functions": {
            "worker1": {"nodes": [
                {"op": "lock", "lock": "m1", "line": 5},
                {"op": "lock", "lock": "m2", "line": 6},
                {"op": "unlock", "lock": "p", "line": 7},
                write("g", 8),
            ]},
            "worker2": {"nodes": [
                {"op": "lock", "lock": "p", "line": 12},
                write("g", 13),
                {"op": "unlock", "lock": "p", "line": 14},
            ]},
            "main": {"nodes": [create("t1", "worker1", 20), create("t2", "worker2", 21)]},
        },
    }


@pytest.fixture
def loop_creation_program():
    """main creates workers in a loop; each worker writes g."""
    return {
        "main": "main",
        "functions": {
            "worker": {"nodes": [write("g", 3)]},
            "main": {
                "nodes": [
                    {"id": "head", "op": "skip", "line": 7},
                    {"id": "spawn", **create("w", "worker", 8)},
                    {"id": "exit", "op": "skip", "line": 10},
                ],
                "edges": [["head", "spawn"], ["spawn", "head"], ["head", "exit"]],
                "entry": "head",
            },
        },
    }


ANNOTATED_SOURCE = '''#include<pthread.h>

int g = 0;
int d = 0;

void *thread1(void *arg) {
	d = 1;			// usagePoint: "WRITE:[t1:{t1=CREATED_THREAD},[]]"
	g = 1;			// usagePoint: "WRITE:[t1:{t1=CREATED_THREAD},[]]"
}

void main(){
	g = 0;			// usagePoint: "WRITE:[main:{},[]]"
	pthread_create(&t1, NULL, thread1, NULL);
	if (d == 3) {	// usagePoint: "READ:[main:{t1=PARENT_THREAD},[]]"
		g = 1;		// usagePoint: "WRITE:[main:{t1=PARENT_THREAD},[m]]"
	}
}
'''


@pytest.fixture
def annotated_source():
    return ANNOTATED_SOURCE
