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

import unittest
import openstudio
from src.tbd import psi
from src.tbd import rules
from src.tbd import topolys

DBG  = topolys.CN.DBG
INF  = topolys.CN.INF
WRN  = topolys.CN.WRN
ERR  = topolys.CN.ERR
FTL  = topolys.CN.FTL
TOL  = topolys.CN.TOL

val = psi.PSI().val["regular (BETBG)"]


def surface(type="wall", **kwargs):
    s = dict(type        = type,
             boundary    = "outdoors",
             ground      = False,
             deratable   = type == "wall",
             conditioned = True,
             occupied    = True,
             spandrel    = False,
             subs        = dict())
    s.update(kwargs)

    return s


def edge(*ids, **kwargs):
    e = dict(surfaces=dict([(id, dict()) for id in ids]),
             horizontal=False,
             vertical=True,
             length=3.0)
    e.update(kwargs)

    return e


class TestEdgeRules(unittest.TestCase):
    def test00_pick(self):
        self.assertEqual(rules.pick(dict()), None)
        self.assertEqual(rules.pick(dict(transition=0)), ("transition", 0))

        candidates = dict(fenestration=0.5, rimjoist=0.5, balcony=0.8)
        self.assertEqual(rules.pick(candidates), ("balcony", 0.8))

        candidates = dict(fenestration=0.5, rimjoist=0.5)
        self.assertEqual(rules.pick(candidates), ("fenestration", 0.5))

        candidates = dict(rimjoist=0.5, fenestration=0.5)
        self.assertEqual(rules.pick(candidates), ("rimjoist", 0.5))

    def test01_transitions(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        s = dict(w1=surface(), w2=surface(), x=surface(deratable=False))

        # Flat (no polar positions): neither corner.
        res = rules.classify(edge("w1", "w2"), s, dict(), dict(), val)
        self.assertEqual(res, dict(transition=0))

        # No deratable surfaces.
        res = rules.classify(edge("x"), s, dict(), dict(), val)
        self.assertEqual(res, dict())
        self.assertEqual(o.status(), 0)

    def test02_grade_party(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        s = dict(w1=surface(),
                 slab=surface("floor", boundary="Ground", ground=True),
                 wall=surface(boundary="OtherSideCoefficients", deratable=False))

        res = rules.classify(edge("w1", "slab"), s, dict(), dict(), val)
        self.assertEqual(res, dict(grade=0.45))

        res = rules.classify(edge("w1", "wall"), s, dict(), dict(), val)
        self.assertEqual(res, dict(party=0.45))

        # Rules are evaluated in order: grade first.
        res = rules.classify(edge("w1", "wall", "slab"), s, dict(), dict(), val)
        self.assertEqual(list(res.keys()), ["grade", "party"])
        self.assertEqual(rules.pick(res), ("grade", 0.45))
        self.assertEqual(o.status(), 0)

    def test03_intermediate_floors(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        s = dict(w1=surface(),
                 w2=surface(),
                 f1=surface("floor", boundary="c1"),
                 p1=surface("floor", boundary="c2", occupied=False),
                 c1=surface("ceiling", boundary="f1", deratable=False),
                 c2=surface("ceiling", boundary="p1", deratable=False))

        res = rules.classify(edge("w1", "f1", "w2"), s, dict(), dict(), val)
        self.assertEqual(res, dict(rimjoist=0.5))

        # Plenum floor, over an occupied ceiling.
        res = rules.classify(edge("w1", "p1", "w2"), s, dict(), dict(), val)
        self.assertEqual(res, dict(ceiling=0))

        # Balcony slab.
        shades = dict(b1=dict(id="b1"))
        res = rules.classify(edge("w1", "f1", "b1", "w2"), s, dict(), shades, val)
        self.assertEqual(res, dict(balcony=0.5))
        self.assertEqual(o.status(), 0)

    def test04_fenestration(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        up    = openstudio.Vector3d(0, 0, 1)
        down  = openstudio.Vector3d(0, 0, -1)
        south = openstudio.Vector3d(0, -1, 0)
        win   = dict(id="win", parent="w1", type="window", glazed=False, mult=2)
        door  = dict(id="door", parent="w1", type="door", glazed=False, mult=1)
        holes = dict(win=win, door=door)
        s     = dict(w1=surface(), w2=surface(), f1=surface("floor"))
        val2  = dict(val, balconysill=0.8, sill=0.5)

        e = edge("w1", "win", horizontal=True, vertical=False)
        e["surfaces"]["win"] = dict(polar=down, normal=south)
        res = rules.classify(e, s, holes, dict(), val)
        self.assertEqual(res, dict(head=0.35))
        self.assertEqual(rules.multiplier(dict(e, psi=res), holes), 2)

        e["surfaces"]["win"] = dict(polar=up, normal=south)
        self.assertEqual(rules.classify(e, s, holes, dict(), val), dict(sill=0.35))

        e = edge("w1", "door")
        e["surfaces"]["door"] = dict(polar=openstudio.Vector3d(1, 0, 0), normal=south)
        self.assertEqual(rules.classify(e, s, holes, dict(), val), dict(doorjamb=0.5))

        # Windows over balconies: the most conductive (sill) type wins.
        shades = dict(b1=dict(id="b1"))
        e = edge("w1", "f1", "b1", "win", "w2", horizontal=True, vertical=False)
        e["surfaces"]["win"] = dict(polar=up, normal=south)
        res = rules.classify(e, s, holes, shades, val2)
        self.assertEqual(res, dict(balconysill=0.8, sill=0.5))
        self.assertEqual(rules.pick(res), ("balconysill", 0.8))

        # On ties, the first rule evaluated (balcony) wins.
        res = rules.classify(e, s, holes, shades, dict(val2, sill=0.8))
        self.assertEqual(res, dict(balconysill=0.8, sill=0.8))
        self.assertEqual(rules.pick(res), ("balconysill", 0.8))

        res = rules.classify(e, s, holes, shades, dict(val2, sill=0.81))
        self.assertEqual(rules.pick(res), ("sill", 0.81))

        e["surfaces"]["door"] = dict()
        del e["surfaces"]["win"]
        res = rules.classify(e, s, holes, shades, val)
        self.assertEqual(list(res.keys()), ["balconydoorsill"])

        self.assertEqual(rules.multiplier(dict(psi=dict(rimjoist=0.5), surfaces=dict(win=dict())), holes), 1)
        self.assertEqual(o.status(), 0)

        # Subsurface linked to a deratable surface other than its parent.
        e = edge("w2", "win")
        e["surfaces"]["win"] = dict(polar=up, normal=south)
        self.assertEqual(rules.classify(e, s, holes, dict(), val), dict(transition=0))
        self.assertTrue(o.is_error())
        self.assertTrue(o.logs()[0]["message"].startswith("Orphaned subsurface win"))
        self.assertEqual(o.clean(), DBG)

    def test05_unhinged(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        s     = dict(roof=surface("ceiling", deratable=True))
        holes = dict(tube=dict(id="tube", parent="roof", type="skylight",
                               glazed=False, mult=1, unhinged=True))

        e   = edge("tube")
        res = rules.classify(e, s, holes, dict(), val)
        self.assertEqual(res, dict(jamb=0.35))
        self.assertEqual(sorted(e["surfaces"].keys()), ["roof", "tube"])

        holes["tube"]["unhinged"] = False
        self.assertEqual(rules.classify(edge("tube"), s, holes, dict(), val), dict())
        self.assertEqual(o.status(), 0)

    def test06_proximity(self):
        o = rules.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        holes = dict(win1=dict(id="win1", parent="w1", type="window", mult=1),
                     win2=dict(id="win2", parent="w1", type="window", mult=1),
                     tube=dict(id="tube", parent="w1", type="skylight", mult=1,
                               unhinged=True))

        def jamb(sub="", x=0, io=False):
            e = edge("w1", sub,
                     v0=openstudio.Point3d(x, 0, 1),
                     v1=openstudio.Point3d(x, 0, 2),
                     psi=dict(jamb=0.35))
            if io: e["io_type"] = "jamb"

            return e

        edges = {0: jamb("win1", 1.975), 1: jamb("win2", 2.025), 2: jamb("win1", 1)}
        self.assertEqual(rules.proximity(edges, holes, 0.1), [0, 1])
        self.assertEqual(rules.proximity(edges, holes, TOL), [])

        edges[1] = jamb("win2", 2.025, True)
        self.assertEqual(rules.proximity(edges, holes, 0.1), [])

        edges[1] = jamb("tube", 2.025)
        self.assertEqual(rules.proximity(edges, holes, 0.1), [])

        # Shared edges (linking 2x subsurfaces).
        edges = {0: edge("w1", "win1", "win2",
                         v0=openstudio.Point3d(2, 0, 1),
                         v1=openstudio.Point3d(2, 0, 2),
                         psi=dict(jamb=0.35)),
                 1: jamb("win1", 2.02)}
        self.assertEqual(rules.proximity(edges, holes, 0.1), [])
        self.assertEqual(o.status(), 0)


if __name__ == "__main__":
    unittest.main()
