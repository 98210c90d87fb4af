# BSD 3-Clause License
#
# Copyright (c) 2022-2025, rd2
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
# DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
# FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
# DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
# OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
# OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

from oslg import oslg
from .topolys import CN
from .geo import zenith, isConcave, isConvex, matches


def variant(edge=dict(), i1="", i2="") -> str:
    """Returns "concave" or "convex" if 2 edge-linked surfaces are either,
    otherwise "" (e.g. ~flat, or if either surface lacks a polar position)."""
    s1 = edge["surfaces"].get(i1)
    s2 = edge["surfaces"].get(i2)

    if isConcave(s1, s2): return "concave"
    if isConvex(s1, s2): return "convex"

    return ""


def _other(x=dict(), id=""):
    """Returns the other deratable surface ID (or itself, if single)."""
    d = x["deratables"]

    if len(d) == 1: return id
    if d[0] == id: return d[-1]

    return d[0]


def _linked(x=dict()) -> list:
    return list(x["edge"]["surfaces"].keys())


def _floor(x=dict(), id=""):
    """Returns the ID of a linked, conditioned, non-ground floor (other than
    a floor "id"), or None."""
    s = x["s"]
    if s[id]["type"] == "floor": return None

    for i in _linked(x):
        if i == id: continue
        if i not in s: continue
        if s[i]["type"] != "floor": continue
        if s[i]["ground"]: continue
        if not s[i]["conditioned"]: continue

        return i

    return None


def grade(x=dict(), id=""):
    """Edge links a single deratable surface & a ground-facing surface."""
    s = x["s"]
    if len(x["deratables"]) != 1: return None
    if s[id]["ground"]: return None

    for i in _linked(x):
        if i == id or i not in s: continue
        if s[i]["ground"]: return "grade" + variant(x["edge"], id, i)

    return None


def balcony(x=dict(), id=""):
    """Edge links a deratable surface, a conditioned intermediate floor and a
    shading surface (a balcony slab). If a linked window (or glazed door) also
    sits on that edge, it is a "balconysill" edge; a "balconydoorsill" if an
    opaque door.
    """
    if not any(i in x["shades"] for i in _linked(x)): return None
    if ceiling(x, id): return None
    if not _floor(x, id): return None

    typ = "balcony"

    for i in _linked(x):
        if i not in x["holes"]: continue

        sub = x["holes"][i]

        if sub["type"] == "window" or (sub["type"] == "door" and sub["glazed"]):
            typ = "balconysill"
        elif sub["type"] == "door":
            typ = "balconydoorsill"

        break

    return typ + variant(x["edge"], id, _other(x, id))


def parapet(x=dict(), id=""):
    """Edge links a deratable ceiling (roof) & a deratable wall. Tagged "roof"
    rather than "parapet" if requested."""
    s = x["s"]
    if len(x["deratables"]) != 2: return None
    if s[id]["type"] != "ceiling": return None

    for i in x["deratables"]:
        if i == id: continue
        if s[i]["type"] != "wall": continue

        typ = "parapet" if x["parapet"] else "roof"

        return typ + variant(x["edge"], id, i)

    return None


def ceiling(x=dict(), id=""):
    """Edge links a deratable surface and a conditioned, non-occupied floor
    (e.g. of a plenum) whose adjacent surface is an occupied, conditioned
    ceiling, i.e. an intermediate floor slab hidden behind ceiling tiles.
    """
    s = x["s"]
    if not x["deratables"]: return None
    if s[id]["type"] == "floor": return None

    for i in _linked(x):
        if i == id or i not in s: continue
        if s[i]["type"] != "floor": continue
        if s[i]["ground"]: continue
        if not s[i]["conditioned"]: continue
        if s[i]["occupied"]: continue

        c = s[i]["boundary"]
        if c not in s: continue
        if s[c]["type"] != "ceiling": continue
        if not s[c]["conditioned"]: continue
        if not s[c]["occupied"]: continue

        return "ceiling" + variant(x["edge"], id, _other(x, id))

    return None


def rimjoist(x=dict(), id=""):
    """Edge links a deratable surface & a conditioned intermediate floor."""
    if any(i in x["shades"] for i in _linked(x)): return None
    if ceiling(x, id): return None
    if not _floor(x, id): return None

    return "rimjoist" + variant(x["edge"], id, _other(x, id))


def fenestration(x=dict(), id=""):
    """Edge links a subsurface (window, door or skylight) and its deratable
    parent (or a neighbouring deratable surface, e.g. corner windows). The
    edge is tagged as either a head, sill or jamb, based on the polar
    position of the subsurface around the edge vs the zenith. Edges of
    horizontal subsurfaces are all jambs.
    """
    mth  = "tbd.fenestration"
    edge = x["edge"]

    for i in _linked(x):
        if i in x["deratables"]: continue
        if i not in x["holes"]: continue

        sub    = x["holes"][i]
        target = id

        if len(x["deratables"]) == 1:
            if sub["parent"] != id:
                oslg.log(CN.ERR, "Orphaned subsurface %s (%s)" % (i, mth))
                continue
        elif sub["parent"] == id:
            target = _other(x, id)
        elif sub["parent"] != _other(x, id):
            oslg.log(CN.ERR, "Orphaned subsurface %s (%s)" % (i, mth))
            continue

        s2 = edge["surfaces"][i]
        if "polar" not in s2: continue

        if sub["type"] == "door" and not sub["glazed"]:
            prefix = "door"
        elif sub["type"] == "skylight":
            prefix = "skylight"
        else:
            prefix = ""

        if abs(abs(s2["normal"].dot(zenith)) - 1) < CN.TOL:
            typ = "jamb"
        elif edge["horizontal"]:
            typ = "head" if s2["polar"].dot(zenith) < 0 else "sill"
        else:
            typ = "jamb"

        return prefix + typ + variant(edge, target, i)

    return None


def spandrel(x=dict(), id=""):
    """Edge links a deratable spandrel wall & a deratable non-spandrel wall."""
    s = x["s"]
    if len(x["deratables"]) != 2: return None
    if s[id]["type"] != "wall": return None
    if not s[id]["spandrel"]: return None

    for i in x["deratables"]:
        if i == id: continue
        if s[i]["type"] != "wall": continue
        if s[i]["spandrel"]: continue

        return "spandrel" + variant(x["edge"], id, i)

    return None


def corner(x=dict(), id=""):
    """Edge links 2x deratable walls, either concave or convex."""
    s = x["s"]
    if len(x["deratables"]) != 2: return None
    if s[id]["type"] != "wall": return None

    for i in x["deratables"]:
        if i == id: continue
        if s[i]["type"] != "wall": continue

        v = variant(x["edge"], id, i)
        if v: return "corner" + v

    return None


def party(x=dict(), id=""):
    """Edge links a single deratable surface & a surface facing another
    (uncontrolled) building zone, i.e. an "OtherSideCoefficients" boundary."""
    s = x["s"]
    if len(x["deratables"]) != 1: return None

    for i in _linked(x):
        if i == id or i not in s: continue
        if s[i]["boundary"].lower() != "othersidecoefficients": continue

        return "party" + variant(x["edge"], id, i)

    return None


# Classification rules, in order of evaluation (which breaks ties).
rules = (grade, balcony, parapet, ceiling, rimjoist,
         fenestration, spandrel, corner, party)


def classify(edge=dict(), s=dict(), holes=dict(), shades=dict(), val=dict(),
             parapet=True) -> dict:
    """Returns the thermal bridge types (and PSI values) an edge qualifies
    as, in order of rule evaluation. Every rule is evaluated (once) against
    each linked deratable surface. Edges linking deratable surfaces, yet
    matching no rule, are (mild) transitions. Edges of unhinged subsurfaces
    (only linked to the subsurface itself) are jambs of their parent surface.

    Args:
        edge (dict):
            A TBD edge, with linked surfaces (sorted by polar angle).
        s (dict):
            TBD surfaces.
        holes (dict):
            TBD subsurfaces, keyed by ID.
        shades (dict):
            TBD shading surfaces, keyed by ID.
        val (dict):
            PSI values (W/K per m) of the building PSI set, per type.
        parapet (bool):
            Whether wall-to-roof edges are parapets (or roofs).

    Returns:
        dict: PSI type candidates (type: value), possibly empty.

    """
    psi = dict()
    ids = [i for i in edge["surfaces"] if i in s and s[i]["deratable"]]
    x   = dict(edge=edge, s=s, holes=holes, shades=shades,
               deratables=ids, parapet=parapet)

    if not ids:
        if len(edge["surfaces"]) != 1: return psi

        i = list(edge["surfaces"].keys())[0]
        if i not in holes: return psi
        if not holes[i].get("unhinged", False): return psi

        dad = holes[i]["parent"]
        if dad not in s: return psi
        if not s[dad]["conditioned"]: return psi

        edge["surfaces"][dad] = dict()
        psi["jamb"] = val.get("jamb", 0)

        return psi

    for rule in rules:
        for id in ids:
            typ = rule(x, id)
            if not typ: continue

            psi[typ] = val.get(typ, 0)
            break

    if not psi: psi["transition"] = val.get("transition", 0)

    return psi


def pick(psi=dict()):
    """Returns the most conductive (type, value) among PSI candidates, the
    first one winning ties. None if empty."""
    res = None

    for typ, value in psi.items():
        if res is None or value > res[1]: res = (typ, value)

    return res


def multiplier(edge=dict(), holes=dict()) -> int:
    """Returns the (highest) multiplier of subsurfaces linked to a head, sill
    or jamb edge (1 otherwise)."""
    mult = 1

    if not any(k in t for t in edge.get("psi", dict()) for k in ("head", "sill", "jamb")):
        return mult

    for i in edge["surfaces"]:
        if i in holes: mult = max(mult, holes[i]["mult"])

    return mult


def _hinged(edge=dict(), holes=dict()) -> int:
    """Returns the number of hinged subsurfaces linked to an edge (0 if any
    is unhinged)."""
    nb = 0

    for i in edge["surfaces"]:
        if i not in holes: continue
        if holes[i].get("unhinged", False): return 0

        nb += 1

    return nb


def proximity(edges=dict(), holes=dict(), tol=CN.TOL) -> list:
    """Returns IDs of subsurface edges in close proximity (both vertices
    within tolerance) to another subsurface's edge, e.g. between adjacent
    windows sharing a mullion. Edges linking more than one subsurface, edges
    of unhinged subsurfaces, and edges with a user-set type are ignored.

    Returns:
        list: Edge IDs (to reset as transitions).

    """
    res  = []
    subs = dict()

    for id, edge in edges.items():
        if "io_type" in edge: continue
        if "psi" not in edge: continue
        if _hinged(edge, holes) != 1: continue

        subs[id] = edge

    for id, edge in subs.items():
        for nom, e in subs.items():
            if nom == id: continue
            if not matches(edge, e, tol): continue

            res.append(id)
            break

    return res
